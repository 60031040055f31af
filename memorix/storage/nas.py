"""
Uploads to a NAS over SSH/SFTP.

Password authentication only. Unless the config asks for strict checking,
unknown host keys are accepted, which trusts whoever answers on the NAS
address the first time.
"""
import logging
import posixpath
import stat
from typing import BinaryIO

import paramiko

from ..exceptions import (
    AuthenticationError,
    DestinationExistsError,
    DestinationNotDirectoryError,
    StorageConfigError,
    StorageConnectionError,
    StorageError,
)
from ..models import StorageConfig
from .base import StorageBackend, check_filename, copy_stream, to_posix


class NasBackend(StorageBackend):
    def upload(self, stream: BinaryIO, filename: str, storage_config: StorageConfig) -> str:
        check_filename(filename)
        self._check_config(storage_config)

        remote_dir = to_posix(storage_config.remote_dir)
        dest = posixpath.join(remote_dir, filename)

        with self.connect(storage_config) as client:
            with self._open_sftp(client, storage_config) as sftp:
                self._makedirs(sftp, remote_dir)
                self._ensure_absent(sftp, dest)
                written = self._write(sftp, stream, dest)

        logging.info(f"Uploaded {written} bytes to {storage_config.host}:{dest}")
        return dest

    def connect(self, storage_config: StorageConfig) -> paramiko.SSHClient:
        """
        Opens an SSH session using password authentication.
        The caller owns the returned client and must close it.
        """
        target = f"{storage_config.host}:{storage_config.port}"
        client = paramiko.SSHClient()
        try:
            if storage_config.strict_host_key:
                client.load_system_host_keys(storage_config.known_hosts)
                client.set_missing_host_key_policy(paramiko.RejectPolicy())
            else:
                logging.warning(f"Host key verification disabled for {target}")
                client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

            client.connect(
                hostname=storage_config.host,
                port=storage_config.port,
                username=storage_config.login,
                password=storage_config.password,
                timeout=storage_config.timeout,
                look_for_keys=False,
                allow_agent=False,
            )
        except paramiko.AuthenticationException as e:
            client.close()
            raise AuthenticationError(f"authentication failed: {e}", operation="connect", path=target) from e
        except (paramiko.SSHException, OSError) as e:
            client.close()
            raise StorageConnectionError(f"cannot connect to NAS: {e}", operation="connect", path=target) from e
        return client

    def _open_sftp(self, client: paramiko.SSHClient, storage_config: StorageConfig) -> paramiko.SFTPClient:
        try:
            return client.open_sftp()
        except (paramiko.SSHException, OSError) as e:
            raise StorageConnectionError(f"cannot open SFTP channel: {e}", operation="open_sftp",
                                         path=storage_config.host) from e

    def _check_config(self, storage_config: StorageConfig):
        missing = [label for label, value in (
            ("host", storage_config.host),
            ("username", storage_config.login),
            ("path", storage_config.remote_dir),
        ) if not value]
        if missing:
            raise StorageConfigError(f"NAS config is missing {', '.join(missing)}", operation="upload")

    def _makedirs(self, sftp: paramiko.SFTPClient, remote_dir: str):
        """Creates remote_dir and any missing parents, like `mkdir -p`."""
        current = '/' if remote_dir.startswith('/') else ''
        for part in remote_dir.split('/'):
            if part in ('', '.'):
                continue
            current = posixpath.join(current, part) if current else part
            try:
                attrs = sftp.stat(current)
            except FileNotFoundError:
                try:
                    sftp.mkdir(current)
                except OSError as e:
                    raise StorageError(str(e), operation="mkdir", path=current) from e
                continue
            except OSError as e:
                raise StorageError(str(e), operation="stat", path=current) from e

            if attrs.st_mode is not None and not stat.S_ISDIR(attrs.st_mode):
                raise DestinationNotDirectoryError("destination is not a directory", operation="mkdir",
                                                   path=current)

    def _ensure_absent(self, sftp: paramiko.SFTPClient, dest: str):
        try:
            sftp.stat(dest)
        except FileNotFoundError:
            return
        except OSError as e:
            raise StorageError(str(e), operation="stat", path=dest) from e
        raise DestinationExistsError("already exists", operation="create", path=dest)

    def _write(self, sftp: paramiko.SFTPClient, stream: BinaryIO, dest: str) -> int:
        try:
            # 'x' maps to O_EXCL so a file created since the check is not truncated
            remote = sftp.open(dest, 'wx')
        except OSError as e:
            raise StorageError(str(e), operation="create", path=dest) from e

        try:
            # Pipelined writes report server errors (disk full, quota) on close
            with remote:
                remote.set_pipelined(True)
                return copy_stream(stream, remote)
        except (paramiko.SSHException, OSError) as e:
            raise StorageError(str(e), operation="write", path=dest) from e
