class PropertyError(Exception):
    pass


class ReadOnlyViolation(PropertyError, AttributeError):
    """write attempted through a readonly accessor"""


class ValidationFailure(PropertyError, ValueError):
    """set hook rejected a value"""


class PrivacyViolation(PropertyError, PermissionError):
    """private accessor used outside the declaring module"""


class DoubleRegistration(PropertyError):
    """object registered twice"""


class NotRegistered(PropertyError, LookupError):
    """object or identity unknown to the registry"""


class UnknownProperty(PropertyError, LookupError):
    """no property declared under the requested label"""


class DuplicateProperty(PropertyError, ValueError):
    """label declared twice in the same class"""
