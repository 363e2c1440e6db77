"""bleepclient - async S3 client with signature-v2 request signing."""

from bleepclient.client import Client, FileInfo, create_client
from bleepclient.errors import (
    BleepClientError,
    ConfigurationError,
    MalformedResponse,
    ProtocolError,
    TransportError,
)
from bleepclient.multipart import UploadSession, UploadState
from bleepclient.xml_utils import CompletedUpload, PartInfo, PartListing, PartRecord

__version__ = "0.1.0"
version = __version__

__all__ = [
    "BleepClientError",
    "Client",
    "CompletedUpload",
    "ConfigurationError",
    "FileInfo",
    "MalformedResponse",
    "PartInfo",
    "PartListing",
    "PartRecord",
    "ProtocolError",
    "TransportError",
    "UploadSession",
    "UploadState",
    "create_client",
]
