"""Error types raised by the credential, storage, vault and graph helpers."""


class MiFicError(Exception):
    """Base class for errors surfaced to the pages"""
    status_code = 500


class ConfigurationError(MiFicError):
    """A required setting is missing or empty"""

    def __init__(self, setting, msg="Missing required setting"):
        super().__init__(f"{msg}: {setting}")
        self.setting = setting


class AuthenticationError(MiFicError):
    """Credential exchange or token acquisition failed"""
    status_code = 403


class NotFoundError(MiFicError):
    """Requested comment (blob) does not exist"""
    status_code = 404


class TransportError(MiFicError):
    """Network or service failure from a downstream SDK"""
    status_code = 502


class StoreError(MiFicError):
    """Blob store rejected the operation"""
    status_code = 502


class CommentExistsError(StoreError):
    """A comment with the same name already exists"""
    status_code = 409

    def __init__(self, name):
        super().__init__(f"A comment named '{name}' already exists")
        self.name = name
