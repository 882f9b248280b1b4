"""
oemsat.data_provider
====================

Data providers supply the data that a retrieval calculation requires
but that is not part of the retrieval setup itself: the atmospheric
fields that define the a priori state, the a priori covariance or
precision matrices of the retrieval quantities, the observation error
covariance matrix and the measurement vector.

A retrieval calculation queries this data through :code:`get_<name>`
methods. All arguments passed to the :code:`run` method of a
:class:`oemsat.retrieval.RetrievalCalculation` are forwarded to these
methods, so a single data provider can describe a whole series of
retrieval scenes.

Getters are resolved in the following order:

1. An attribute :code:`<name>` of the provider. Its value is returned
   whatever arguments the getter is called with.
2. A :code:`get_<name>` method of the provider itself.
3. The getters of the sub-providers, in the order they were added.
"""
import weakref


def _first_getter(providers, name):
    for provider in providers:
        getter = provider._get_getter(name)
        if getter is not None:
            return getter
    return None

################################################################################
# Data provider classes
################################################################################


class DataProviderBase:
    """
    Base class for composable data providers.

    Attributes:

        subproviders(:code:`list`): The sub-providers that getter queries
            are forwarded to.
    """
    def __init__(self):
        self._owner = None
        self.subproviders = []

    @property
    def owner(self):
        """The provider this provider was added to."""
        if self._owner is None:
            raise ValueError("Data provider has not been added to a parent "
                             "provider.")
        owner = self._owner()
        if owner is None:
            raise ValueError("Parent data provider has been deleted.")
        return owner

    @owner.setter
    def owner(self, owner):
        self._owner = weakref.ref(owner)

    def add(self, subprovider):
        """
        Add a sub-provider.

        Arguments:

            subprovider: The sub-provider to add. Must inherit from
                :class:`DataProviderBase`.

        Raises:

            TypeError: If :code:`subprovider` doesn't inherit from
                :class:`DataProviderBase`.
        """
        if not isinstance(subprovider, DataProviderBase):
            raise TypeError("Sub-providers must inherit from DataProviderBase.")
        subprovider.owner = self
        self.subproviders.append(subprovider)

    def _get_getter(self, name):
        """
        Resolve the getter :code:`name` or return :code:`None` if neither
        this provider nor any of its sub-providers provides it.
        """
        lookup = object.__getattribute__
        try:
            value = lookup(self, name[4:])
            return lambda *args, **kwargs: value
        except AttributeError:
            pass
        try:
            return lookup(self, name)
        except AttributeError:
            return _first_getter(lookup(self, "subproviders"), name)

    def __getattribute__(self, name):
        if not name.startswith("get_"):
            return object.__getattribute__(self, name)
        getter = object.__getattribute__(self, "_get_getter")(name)
        if getter is None:
            raise AttributeError("{} provides no getter '{}'."
                                 .format(type(self).__name__, name))
        return getter


class CombinedProvider(DataProviderBase):
    """
    Combination of independent data providers.

    Getter queries are forwarded to the combined providers in the order
    in which they were given. Attributes and methods of the combination
    itself are not used as getters.
    """
    def __init__(self, *providers):
        super().__init__()
        for provider in providers:
            self.add(provider)

    def _get_getter(self, name):
        return _first_getter(object.__getattribute__(self, "subproviders"),
                             name)


class _NamedProvider(DataProviderBase):
    """
    Provider with a single getter :code:`get_<name>` that is implemented
    by the :code:`get` method of the subclass.
    """
    def __init__(self, name):
        super().__init__()
        self.__dict__["get_" + name] = self.get

    def get(self, *args, **kwargs):
        raise NotImplementedError()


class Constant(_NamedProvider):
    """
    Provides a constant value for a given quantity.

    Arguments:

        name(:code:`str`): Name of the quantity.

        value: The value to return.
    """
    def __init__(self, name, value):
        super().__init__(name)
        self.value = value

    def get(self, *args, **kwargs):
        return self.value


class FunctorDataProvider(_NamedProvider):
    """
    Provides the result of a function applied to a quantity of the
    parent provider, for example a fixed a priori profile derived from
    the temperature profile.

    Arguments:

        name(:code:`str`): Name of the quantity to provide.

        variable(:code:`str`): The quantity to get from the parent
            provider.

        func: Function to apply to the values of :code:`variable`.
    """
    def __init__(self, name, variable, func):
        super().__init__(name)
        self.variable = variable
        self.func = func

    def get(self, *args, **kwargs):
        getter = self.owner._get_getter("get_" + self.variable)
        if getter is None:
            raise AttributeError("Could not get variable {} from the parent "
                                 "data provider.".format(self.variable))
        return self.func(getter(*args, **kwargs))
