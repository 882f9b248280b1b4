from setuptools import setup, find_packages
from os import path

here = path.abspath(path.dirname(__file__))
with open(path.join(here, 'README.md'), encoding='utf-8') as f:
    long_description = f.read()

setup(
    name='oemsat',  # Required
    version='0.1.0',  # Required
    description='Optimal estimation retrievals of atmospheric temperature and composition.',
    long_description=long_description,
    long_description_content_type='text/markdown',  # Optional (see note above)
    install_requires=["numpy",
                      "scipy",
                      "xarray",
                      "netCDF4",
                      "typhon",
                      "matplotlib",
                      "loguru",
                      "joblib",
                      "pyyaml"],
    extras_require={"tests": ["pytest"]},
    packages=find_packages(exclude=['examples', 'doc', 'misc', 'tests', 'tests.*']),
    python_requires='>=3.7',
)
