"""
Message storage manager.

Selects message storages and reads, lists and deletes stored messages.
"""

import logging
from concurrent.futures import Future
from typing import TYPE_CHECKING, Optional

from ..driver import DriverKeys as K
from ..exceptions import SMSError, TransactionError
from ..types import MessageEnvelope, SmsStat, StorageInfo

if TYPE_CHECKING:
    from ..core import ModemCore

logger = logging.getLogger(__name__)


class StorageManager:
    """
    Manages message storages (AT+CPMS, AT+CMGR, AT+CMGL, AT+CMGD).

    Every public method runs as one queued operation. Methods prefixed with
    ``do_`` are their unqueued bodies, for use inside another operation.
    ``submit_*`` variants queue the operation and return its future.

    Decoded messages are also published through the modem's update channel,
    so reading or listing messages dispatches them to message listeners.
    """

    def __init__(self, modem_core: "ModemCore") -> None:
        """
        Initialize storage manager.

        Args:
            modem_core: ModemCore instance for AT command execution
        """
        self.modem = modem_core
        logger.debug("Initialized StorageManager")

    @property
    def current(self) -> Optional[str]:
        """Storage selected by the last storage command."""
        return self.modem.prop("storage")

    def set_storage(self, storage: str) -> None:
        """
        Select the message storage.

        Example:

        .. code-block:: python

            modem.storage.set_storage("SM")
        """
        self.modem.run(lambda: self.do_set_storage(storage), {"op": "storage", "storage": storage})

    def do_set_storage(self, storage: Optional[str]) -> None:
        if not storage or storage == self.current:
            return
        logger.info(f"Selecting storage {storage}")
        self.modem.do_query(self._cmd(K.CMD_SMS_STORAGE_SET, STORAGE=storage))

    def get_storage(self) -> dict[str, StorageInfo]:
        """
        Query storage usage.

        Returns:
            Mapping of storage name to usage; the current storage is also
            tracked in the modem properties

        Example:

        .. code-block:: python

            for name, info in modem.storage.get_storage().items():
                print(f"{name}: {info.used}/{info.total}")
        """
        return self.modem.run(self.do_get_storage, {"op": "storage"})

    def do_get_storage(self) -> dict[str, StorageInfo]:
        tx = self.modem.do_query(self._cmd(K.CMD_SMS_STORAGE_GET))
        return tx.result.get("storages", {})

    def read_message(self, index: int, storage: Optional[str] = None) -> list[MessageEnvelope]:
        """
        Read a stored message.

        Args:
            index: Storage index
            storage: Storage to select first (current if None)

        Returns:
            Decoded envelopes (empty if the PDU could not be decoded)
        """
        return self.modem.run(
            lambda: self.do_read_message(index, storage),
            {"op": "read", "storage": storage, "index": index},
        )

    def do_read_message(self, index: int, storage: Optional[str] = None) -> list[MessageEnvelope]:
        self.do_set_storage(storage)
        tx = self.modem.do_query(self._cmd(K.CMD_SMS_READ, SMS_ID=index))
        return tx.result.get("messages", [])

    def submit_read(self, index: int, storage: Optional[str] = None) -> Future:
        """Queue a read; the message is dispatched to message listeners."""
        return self.modem.submit(
            lambda: self.do_read_message(index, storage),
            {"op": "read", "storage": storage, "index": index},
        )

    def delete_message(self, index: int, storage: Optional[str] = None) -> None:
        """
        Delete a stored message.

        Args:
            index: Storage index
            storage: Storage to select first (current if None)
        """
        self.modem.run(
            lambda: self.do_delete_message(index, storage),
            {"op": "delete", "storage": storage, "index": index},
        )

    def do_delete_message(self, index: int, storage: Optional[str] = None) -> None:
        self.do_set_storage(storage)
        logger.debug(f"Deleting message {index} from {storage or self.current}")
        self.modem.do_query(self._cmd(K.CMD_SMS_DELETE, SMS_ID=index))

    def submit_delete(self, index: int, storage: Optional[str] = None) -> Future:
        """Queue a delete."""
        return self.modem.submit(
            lambda: self.do_delete_message(index, storage),
            {"op": "delete", "storage": storage, "index": index},
        )

    def list_messages(
        self,
        stat: SmsStat = SmsStat.ALL,
        storage: Optional[str] = None
    ) -> list[MessageEnvelope]:
        """
        List stored messages.

        Args:
            stat: Status filter
            storage: Storage to select first (current if None)

        Returns:
            Decoded envelopes

        Example:

        .. code-block:: python

            for envelope in modem.storage.list_messages(SmsStat.RECV_UNREAD):
                print(envelope.index, envelope.message.text)
        """
        return self.modem.run(
            lambda: self.do_list_messages(stat, storage),
            {"op": "list", "storage": storage, "stat": int(stat)},
        )

    def do_list_messages(
        self,
        stat: SmsStat = SmsStat.ALL,
        storage: Optional[str] = None
    ) -> list[MessageEnvelope]:
        self.do_set_storage(storage)
        tx = self.modem.do_query(self._cmd(K.CMD_SMS_LIST, SMS_STAT=int(stat)))
        return tx.result.get("messages", [])

    def empty_storage(self, storage: Optional[str] = None) -> int:
        """
        Delete every message of a storage.

        Indexes 1 to the storage capacity are deleted one by one; failures
        (empty slots) are skipped.

        Returns:
            Number of deleted messages
        """
        return self.modem.run(lambda: self.do_empty_storage(storage), {"op": "empty", "storage": storage})

    def do_empty_storage(self, storage: Optional[str] = None) -> int:
        self.do_set_storage(storage)
        self.do_get_storage()
        total = self.modem.prop("storage_total") or 0
        logger.info(f"Emptying storage {self.current} ({total} slots)")

        deleted = 0
        for index in range(1, total + 1):
            try:
                self.modem.do_query(self._cmd(K.CMD_SMS_DELETE, SMS_ID=index))
                deleted += 1
            except TransactionError as e:
                logger.debug(f"Skipping index {index}: {e}")
        logger.info(f"Deleted {deleted} message(s) from {self.current}")
        return deleted

    def _cmd(self, key: str, **variables) -> str:
        cmd = self.modem.get_cmd(key, **variables)
        if not cmd:
            raise SMSError(f"Driver {self.modem.driver.name} has no {key} command")
        return cmd
