class CatalogError(Exception):
    """Base class for every error raised by the catalog."""


class CatalogNotOpenError(CatalogError):
    def __init__(self, operation: str = "operation"):
        super().__init__(f"Catalog is not open; cannot run {operation}")
        self.operation = operation


class InvalidRecipeError(CatalogError):
    """A recipe or reference value failed validation before any write."""


class EmptyNameError(InvalidRecipeError):
    def __init__(self):
        super().__init__("Recipe name must not be empty")


class InvalidSearchError(CatalogError):
    """Search criteria or full-text syntax rejected."""


class ConstraintViolationError(CatalogError):
    """A uniqueness or foreign-key constraint failed inside a transaction."""


class StorageError(CatalogError):
    """The storage engine failed (disk, corruption, attach, ...)."""


class MergeError(CatalogError):
    """A merge was aborted; the target catalog is unchanged."""
