"""Exception hierarchy for COLLADA conversion.

UnresolvedReference and UnsupportedShape are recovered locally by the tree
builder (warn and skip); MalformedDocument and AmbiguousOrMissingRoot abort the
whole conversion.
"""


class ColladaError(ValueError):
    """Base class for every conversion failure."""


class UnresolvedReference(ColladaError):
    """A sid, url or bind symbol could not be resolved."""


class UnsupportedShape(ColladaError):
    """A geometry, equation or axis kind is not understood."""


class MalformedDocument(ColladaError):
    """A required element is missing or nothing could be extracted."""


class AmbiguousOrMissingRoot(ColladaError):
    """The link/joint graph does not have exactly one root."""
