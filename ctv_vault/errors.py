class CtvError(Exception):
    """Base class for everything the template and vault builders raise."""


class InvalidAddressForNetwork(CtvError, ValueError):
    def __init__(self, address: str, network: str):
        super().__init__(f"Address {address!r} is not valid for network {network!r}")
        self.address = address
        self.network = network


class UnknownNetwork(CtvError, ValueError):
    pass


class MissingSequence(CtvError):
    pass


class DataTooLarge(CtvError, ValueError):
    pass


class MalformedCommitment(CtvError, ValueError):
    pass


class SerializationFailure(CtvError, ValueError):
    pass


class InvalidTemplate(CtvError, ValueError):
    pass


class InvalidAmount(CtvError, ValueError):
    pass


class InvalidDelay(CtvError, ValueError):
    pass


class TemplateTooDeep(CtvError):
    pass
