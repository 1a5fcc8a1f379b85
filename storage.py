"""
Blob-backed comment store

Each comment is one blob in the configured container: the blob name is the
comment name and the blob content is the comment text. The container client
authenticates with the federated credential from credentials.py.
"""

import logging
from contextlib import contextmanager

from azure.core.exceptions import (
    AzureError,
    ClientAuthenticationError,
    ResourceExistsError,
    ResourceNotFoundError,
)
from azure.storage.blob import ContainerClient

from exceptions import (
    AuthenticationError,
    CommentExistsError,
    NotFoundError,
    TransportError,
)
from models import Comment

logger = logging.getLogger(__name__)

# One byte per character; anything outside latin-1 is replaced on upload
ENCODING = "latin-1"


def _encode(text):
    return text.encode(ENCODING, errors="replace")


def _decode(data):
    return data.decode(ENCODING)


class CommentStore:
    """List, create and delete comments stored as blobs"""

    def __init__(self, storage_config, identity_config, credential_cache, container_factory=None):
        self.storage_config = storage_config
        self.identity_config = identity_config
        self.credential_cache = credential_cache
        self._container_factory = container_factory or self._build_container_client

    def _build_container_client(self, credential):
        return ContainerClient(
            self.storage_config.account_url,
            self.storage_config.container_name,
            credential=credential,
        )

    def _container(self):
        """Resolve a container client for the configured account and container

        The client owns a connection pool; callers use it as a context manager.
        """
        identity = self.identity_config
        credential = self.credential_cache.get(
            identity.managed_identity_client_id,
            identity.tenant_id,
            identity.client_id,
        )
        return self._container_factory(credential)

    @contextmanager
    def _translate_errors(self, operation):
        """Re-raise Azure SDK errors as the app's error types"""
        try:
            yield
        except ClientAuthenticationError as e:
            logger.error("Blob %s failed to authenticate: %s", operation, e)
            # force a fresh exchange on the next request
            self.credential_cache.invalidate(self.identity_config.tenant_id, self.identity_config.client_id)
            raise AuthenticationError(f"Could not authenticate to Blob Storage: {e.message}") from e
        except AzureError as e:
            logger.error("Blob %s failed: %s", operation, e)
            raise TransportError(f"Blob Storage {operation} failed: {e.message}") from e

    def _ensure_container(self, container):
        if container.exists():
            return
        try:
            container.create_container()
            logger.info("Created container %s", self.storage_config.container_name)
        except ResourceExistsError:
            # created concurrently
            pass

    def list(self):
        """Return every comment in the container, content fully downloaded"""
        comments = []
        with self._translate_errors("list"), self._container() as container:
            self._ensure_container(container)
            for blob in container.list_blobs():
                data = container.download_blob(blob.name).readall()
                comments.append(Comment(name=blob.name, text=_decode(data)))
        logger.info("Loaded %d comments from %s", len(comments), self.storage_config.container_name)
        return comments

    def get(self, name):
        """Return a single comment or raise NotFoundError"""
        with self._translate_errors("download"), self._container() as container:
            try:
                data = container.download_blob(name).readall()
            except ResourceNotFoundError as e:
                raise NotFoundError(f"Comment '{name}' not found") from e
        return Comment(name=name, text=_decode(data))

    def create(self, comment):
        """Upload a new comment; an existing name raises CommentExistsError"""
        with self._translate_errors("upload"), self._container() as container:
            self._ensure_container(container)
            try:
                container.upload_blob(comment.name, _encode(comment.text), overwrite=False)
            except ResourceExistsError as e:
                raise CommentExistsError(comment.name) from e
        logger.info("Uploaded comment %s", comment.name)

    def delete(self, comment):
        """Delete the comment's blob; a missing blob is not an error"""
        with self._translate_errors("delete"), self._container() as container:
            try:
                container.delete_blob(comment.name)
            except ResourceNotFoundError:
                logger.info("Comment %s already absent", comment.name)
                return
        logger.info("Deleted comment %s", comment.name)
