class StorageError(Exception):
    """Upload, signing or fetch against the image backend failed."""


class ImageNotFound(StorageError):
    pass
