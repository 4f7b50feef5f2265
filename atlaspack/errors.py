"""Error types raised by atlas packing and font atlas building."""


class AtlasError(ValueError):
    """Base class for fatal packing/building errors."""


class ConfigError(AtlasError):
    """Invalid geometry or option values. Raised before any I/O."""


class InputError(AtlasError):
    """An image or font file could not be read or decoded."""


class CapacityError(AtlasError):
    """Something does not fit: a sprite larger than a page, or a charset
    larger than the atlas grid."""
