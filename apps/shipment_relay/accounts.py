"""
Store account directory.

Maps an OrderDesk store ID to its API key and display name. The store table
is fixed; each API key is supplied externally through a ``STORE_<store_id>``
environment variable (optionally loaded from a .env file). The directory is
read-only once built, so lookups need no locking.
"""

import logging
import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from apps.shipment_relay.exceptions import InvalidAccountError
from libs.common.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Separates the store ID from the order token in a source ID ("21633-100")
ACCOUNT_DELIMITER = "-"

CREDENTIAL_ENV_PREFIX = "STORE_"

# (store_id, display_name)
STORE_TABLE: tuple[tuple[str, str], ...] = (
    ("21633", "Amentum Inventory"),
    ("40348", "Amentum Safety"),
    ("12803", "ASE"),
    ("9672", "Bon Appetit"),
    ("47219", "Bon Appetit Nudge"),
    ("8366", "BPA Store"),
    ("16152", "Chartwells K12 Nudge"),
    ("8466", "Compass Catalog"),
    ("15521", "Cuilinart Nudge"),
    ("24121", "EDTA Inventory"),
    ("14077", "Eurest Hero"),
    ("12339", "Eurest Nudge"),
    ("43379", "FBLA"),
    ("9369", "FCCLA"),
    ("9805", "Flik"),
    ("67865", "Flik PSR"),
    ("48371", "Forbes Brand Store"),
    ("48551", "Forbes Redemption"),
    ("110641", "Keystone Redemption"),
    ("41778", "Marriot Store"),
    ("8267", "NRA Competitive Shooting"),
    ("75092", "Phi Kappa Phi"),
    ("8402", "Ryder FMS"),
    ("68125", "Ryder SCS"),
    ("8729", "SkillsUSA"),
    ("47257", "Springs Living"),
    ("8636", "TSA"),
    ("118741", "Store AB"),
)


@dataclass(frozen=True)
class Account:
    """OrderDesk store account. ``credential`` is None when no API key is configured."""

    account_id: str
    credential: str | None
    display_name: str

    def __repr__(self) -> str:
        # Never render the API key
        return f"Account(account_id={self.account_id!r}, display_name={self.display_name!r})"


def parse_account_id(external_reference: str) -> str:
    """
    Extract the store ID from an external reference.

    The store ID is everything before the first ``-``.

    Args:
        external_reference: Source ID such as ``"21633-100"``

    Returns:
        Store ID (e.g. ``"21633"``)

    Raises:
        InvalidAccountError: If there is no delimiter or the prefix is empty

    Example:
        >>> parse_account_id("21633-100-A")
        '21633'
    """
    account_id, delimiter, _ = external_reference.partition(ACCOUNT_DELIMITER)
    if not delimiter or not account_id:
        raise InvalidAccountError(
            account_id,
            f"Invalid store ID: cannot parse store from source_id {external_reference!r}",
        )
    return account_id


class AccountDirectory:
    """
    Immutable lookup table of store accounts.

    Example:
        >>> directory = AccountDirectory([Account("21633", "key", "Amentum Inventory")])
        >>> directory.lookup("21633").display_name
        'Amentum Inventory'
        >>> directory.lookup("99999") is None
        True
    """

    def __init__(self, accounts: Iterable[Account]):
        """
        Build the directory.

        Raises:
            ConfigurationError: If two accounts share an account_id
        """
        by_id: dict[str, Account] = {}
        for account in accounts:
            if account.account_id in by_id:
                raise ConfigurationError(f"Duplicate store ID in account table: {account.account_id}")
            by_id[account.account_id] = account
        self._accounts: Mapping[str, Account] = by_id

    def lookup(self, account_id: str) -> Account | None:
        """Return the account for ``account_id``, or None if it is not configured."""
        account = self._accounts.get(account_id)
        if account is None:
            logger.warning(f"Store with ID {account_id} not found")
        return account

    def __len__(self) -> int:
        return len(self._accounts)

    def __contains__(self, account_id: object) -> bool:
        return account_id in self._accounts

    def missing_credentials(self) -> list[str]:
        """Store IDs that have no API key configured."""
        return [a.account_id for a in self._accounts.values() if not a.credential]


def load_account_directory(
    environ: Mapping[str, str] | None = None,
    dotenv_path: str | Path | None = None,
    table: Iterable[tuple[str, str]] = STORE_TABLE,
) -> AccountDirectory:
    """
    Build the account directory from the store table and environment.

    Args:
        environ: Mapping to read ``STORE_<id>`` keys from (default: os.environ)
        dotenv_path: Optional .env file loaded into os.environ first; a missing
            file is ignored
        table: (store_id, display_name) pairs

    Returns:
        AccountDirectory with one Account per table row
    """
    if dotenv_path is not None and Path(dotenv_path).exists():
        load_dotenv(dotenv_path=dotenv_path, override=False)
        logger.info("Loaded store credentials file", extra={"dotenv_path": str(dotenv_path)})

    env = os.environ if environ is None else environ

    accounts = [
        Account(
            account_id=store_id,
            credential=env.get(f"{CREDENTIAL_ENV_PREFIX}{store_id}") or None,
            display_name=name,
        )
        for store_id, name in table
    ]
    directory = AccountDirectory(accounts)

    missing = directory.missing_credentials()
    if missing:
        logger.warning(
            f"{len(missing)} stores have no API key configured",
            extra={"store_ids": missing},
        )
    logger.info(f"Account directory loaded: {len(directory)} stores")

    return directory
