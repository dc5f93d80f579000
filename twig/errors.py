"""twig error types."""


class TwigError(Exception):
    """Base class for every error raised by twig itself."""


class NotARepository(TwigError, ValueError):
    """Raised when a command is run outside a twig repository."""

    def __init__(self, start_path):
        super().__init__(
            f"Not inside a twig repository (searched from {start_path})\n"
            f"  Run 'twig init' to create one, or use '-C <path>' to specify a directory."
        )


class ObjectNotFoundError(TwigError, LookupError):
    """Raised when an object id is not present in the store."""

    def __init__(self, oid: str):
        self.oid = oid
        super().__init__(f"Object not found: {oid}")


class TypeMismatchError(TwigError, ValueError):
    """Raised when an object is read with the wrong expected type."""

    def __init__(self, oid: str, expected: str, actual: str):
        self.oid = oid
        self.expected = expected
        self.actual = actual
        super().__init__(f"Type mismatch: object {oid} is a {actual}, expected {expected}")


class CorruptObjectError(TwigError, ValueError):
    """Raised when stored bytes cannot be decoded as a twig object."""


class UnexpectedFilenameError(CorruptObjectError):
    """Raised when a tree entry name is not a plain path component.

    A name containing a path separator, or equal to ``.`` or ``..``,
    means the tree was written by something other than twig (or the
    store is corrupt). Materializing it could escape the working tree.
    """


class UnknownNameError(TwigError, LookupError):
    """Raised when a name matches no ref and is not a full object id."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown name: {name}")


class RefCycleError(TwigError, ValueError):
    """Raised when a chain of symbolic refs does not terminate."""


class NoCommonAncestorError(TwigError, ValueError):
    """Raised when two commits share no history."""

    def __init__(self, a: str, b: str):
        super().__init__(f"No common ancestor between {a} and {b}")


class ToolInvocationError(TwigError, RuntimeError):
    """Raised when the external diff/merge program fails."""
