#!/usr/bin/env python3
"""qBittorrent client wrapper for the seed-box RPC endpoint."""

import logging
import threading
from typing import Any, Dict, List, Optional

import qbittorrentapi
import urllib3

from .config import Instance
from .constants import DEFAULT_TIMEOUT
from .exceptions import ProtocolError, RPCError, SeedboxConnectionError

# Suppress SSL warnings when SSL verification is disabled
urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

logger = logging.getLogger(__name__)

_AUTH_ERRORS = (
    qbittorrentapi.LoginFailed,
    qbittorrentapi.Unauthorized401Error,
    qbittorrentapi.Forbidden403Error,
)


class SeedboxClient:
    """qBittorrent client wrapper owned by a single instance scheduler.

    Translates ``qbittorrentapi`` exceptions into this package's error
    taxonomy. The connection is established lazily and dropped after a
    connection failure, so the next cycle logs in again.
    """

    def __init__(self, instance: Instance):
        """
        Initialize client wrapper.

        Args:
            instance: Instance to connect to
        """
        self.instance = instance
        self._client: Optional[qbittorrentapi.Client] = None
        # Removal workers share this client; only one of them may log in
        self._connect_lock = threading.RLock()

    @property
    def client(self) -> qbittorrentapi.Client:
        """Get the underlying client, connecting if needed."""
        with self._connect_lock:
            if self._client is None:
                self.connect()
            return self._client

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    def connect(self, *, quiet: bool = False) -> None:
        """
        Connect and log in to qBittorrent.

        Args:
            quiet: If True, log the connection at debug level only

        Raises:
            SeedboxConnectionError: If the endpoint is unreachable or login fails
        """
        with self._connect_lock:
            self._login(quiet)

    def _login(self, quiet: bool) -> None:
        client = qbittorrentapi.Client(
            host=self.instance.url,
            username=self.instance.username,
            password=self.instance.password,
            VERIFY_WEBUI_CERTIFICATE=self.instance.verify_ssl,
            REQUESTS_ARGS={'timeout': DEFAULT_TIMEOUT},
        )

        # Suppress SSL logging for connection
        original_level = logging.getLogger("urllib3.connectionpool").level
        logging.getLogger("urllib3.connectionpool").setLevel(logging.ERROR)
        try:
            client.auth_log_in()
            version = client.app.version
            api_version = client.app.web_api_version
        except _AUTH_ERRORS as e:
            raise SeedboxConnectionError(f"login to {self.instance.url} failed: {e}") from e
        except qbittorrentapi.APIError as e:
            raise SeedboxConnectionError(f"cannot connect to {self.instance.url}: {e}") from e
        finally:
            # Restore original logging level
            logging.getLogger("urllib3.connectionpool").setLevel(original_level)

        self._client = client
        ssl_status = "enabled" if self.instance.verify_ssl else "disabled"
        log_fn = logger.debug if quiet else logger.info
        log_fn(f"[{self.instance.name}] Connected to qBittorrent {version} (API: {api_version}, SSL: {ssl_status})")

    def disconnect(self) -> None:
        """Log out and drop the connection."""
        if self._client:
            try:
                self._client.auth_log_out()
                logger.debug(f"[{self.instance.name}] Disconnected from qBittorrent")
            except qbittorrentapi.APIError as e:
                logger.debug(f"[{self.instance.name}] Logout error (ignored): {e}")
            finally:
                self._client = None

    def _translate(self, action: str, error: qbittorrentapi.APIError, command: bool = False) -> Exception:
        """Map a qbittorrentapi error onto the package's exception types."""
        if isinstance(error, _AUTH_ERRORS):
            self._client = None
            return SeedboxConnectionError(f"{action}: authentication rejected: {error}")
        if isinstance(error, qbittorrentapi.HTTPError):
            if command:
                return RPCError(f"{action}: {error}")
            return ProtocolError(f"{action}: {error}")
        if isinstance(error, qbittorrentapi.APIConnectionError):
            self._client = None
            return SeedboxConnectionError(f"{action}: {error}")
        if command:
            return RPCError(f"{action}: {error}")
        return ProtocolError(f"{action}: {error}")

    def fetch_torrents(self) -> List[Dict[str, Any]]:
        """
        Fetch every torrent with the attributes the evaluator needs.

        Torrents that disappear while their trackers or files are being
        looked up are left out.

        Returns:
            List of raw torrent records

        Raises:
            SeedboxConnectionError: If the endpoint cannot be reached
            ProtocolError: If the endpoint returns an unexpected answer
        """
        try:
            torrents = self.client.torrents.info()
        except qbittorrentapi.APIError as e:
            raise self._translate("fetching torrents", e) from e

        records = []
        for torrent in torrents:
            record = self._to_record(torrent)
            if record is not None:
                records.append(record)
        return records

    def _to_record(self, torrent: Any) -> Optional[Dict[str, Any]]:
        torrent_hash = torrent.get("hash")
        record = {
            "hash": torrent_hash,
            "name": torrent.get("name"),
            "state": torrent.get("state"),
            "progress": torrent.get("progress"),
            "ratio": torrent.get("ratio"),
            "seeding_time": torrent.get("seeding_time"),
            "size": torrent.get("total_size", torrent.get("size", 0)),
        }
        if not torrent_hash:
            # Let snapshot normalization reject it and count it
            return record

        try:
            trackers = self.client.torrents.trackers(torrent_hash=torrent_hash)
            files = self.client.torrents.files(torrent_hash=torrent_hash)
        except qbittorrentapi.NotFound404Error:
            logger.debug(f"[{self.instance.name}] Torrent {torrent_hash} vanished during fetch")
            return None
        except qbittorrentapi.APIError as e:
            raise self._translate(f"fetching details of {torrent_hash}", e) from e

        record["trackers"] = [t.get("url", "") for t in trackers]
        record["file_count"] = len(files)
        return record

    def remove_torrent(self, torrent_id: str, delete_data: bool) -> bool:
        """
        Remove a torrent, optionally with its downloaded data.

        Removing a torrent that no longer exists counts as success.

        Args:
            torrent_id: Torrent hash
            delete_data: Whether to delete the data as well

        Returns:
            True once the torrent is gone

        Raises:
            SeedboxConnectionError: If the endpoint cannot be reached
            RPCError: If the endpoint rejects the removal
        """
        try:
            self.client.torrents.delete(delete_files=delete_data, torrent_hashes=torrent_id)
        except qbittorrentapi.NotFound404Error:
            logger.debug(f"[{self.instance.name}] Torrent {torrent_id} already gone")
        except qbittorrentapi.APIError as e:
            raise self._translate(f"removing {torrent_id}", e, command=True) from e
        return True
