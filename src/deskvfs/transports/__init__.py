"""Transports: back-ends that a mountpoint delegates file operations to."""

from deskvfs.transports.base import BaseTransport, HTTPTransport, error_for_code, error_for_status
from deskvfs.transports.gdrive import GoogleDriveTransport
from deskvfs.transports.local import LocalStorageTransport
from deskvfs.transports.onedrive import OneDriveTransport
from deskvfs.transports.server import ServerTransport
from deskvfs.transports.web import HttpTransport
from deskvfs.transports.webdav import WebDAVTransport

BUILTIN_TRANSPORTS = {
    "server": ServerTransport.from_options,
    "http": HttpTransport.from_options,
    "web": HttpTransport.from_options,
    "dist": HttpTransport.from_options,
    "localstorage": LocalStorageTransport.from_options,
    "googledrive": GoogleDriveTransport.from_options,
    "onedrive": OneDriveTransport.from_options,
    "webdav": WebDAVTransport.from_options,
}

__all__ = [
    "BUILTIN_TRANSPORTS",
    "BaseTransport",
    "GoogleDriveTransport",
    "HTTPTransport",
    "HttpTransport",
    "LocalStorageTransport",
    "OneDriveTransport",
    "ServerTransport",
    "WebDAVTransport",
    "error_for_code",
    "error_for_status",
]
