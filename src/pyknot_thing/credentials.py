"""Credential manager: store and erase the thing id/token pair issued at registration."""

import logging

from . import keys
from .errors import PartialFailureError, StorageIOError, ValidationError
from .settings import DeviceSettings
from .storage import ConfigSource, ConfigStore
from .thing import Thing
from .types import THING_ID_LEN, TOKEN_LEN

logger = logging.getLogger(__name__)

EMPTY = ""


def store_credentials(thing: Thing, store: ConfigStore, settings: DeviceSettings, thing_id: str, token: str) -> None:
    """
    Persist token, then id. If the id cannot be written the token is blanked again
    before the error is raised, so a token is never stored without its id.
    """
    if len(thing_id) > THING_ID_LEN:
        raise ValidationError("thing_id", f"Id longer than {THING_ID_LEN} characters")
    if len(token) > TOKEN_LEN:
        raise ValidationError("token", f"Token longer than {TOKEN_LEN} characters")

    group = keys.CREDENTIALS_GROUP
    with store.open(settings.credentials_path) as source:
        source.write_string(group, keys.CREDENTIALS_THING_TOKEN, token)
        try:
            source.write_string(group, keys.CREDENTIALS_THING_ID, thing_id)
        except StorageIOError:
            logger.error("Failed to store thing id, rolling back token")
            try:
                source.write_string(group, keys.CREDENTIALS_THING_TOKEN, EMPTY)
            except StorageIOError as rollback_error:
                logger.error("Failed to roll back thing token: %s", rollback_error)
            raise

    thing.set_credentials(thing_id, token)
    logger.info("Stored credentials for thing %s", thing_id)


def _erase(source: ConfigSource, key: str) -> None:
    source.write_string(keys.CREDENTIALS_GROUP, key, EMPTY)


def clear_credentials(thing: Thing, store: ConfigStore, settings: DeviceSettings) -> None:
    """
    Erase token, then id. Both erases are attempted; each in-memory field is cleared
    only after its stored value was erased. Raises PartialFailureError if any failed.
    """
    failures: dict[str, BaseException] = {}
    with store.open(settings.credentials_path) as source:
        try:
            _erase(source, keys.CREDENTIALS_THING_TOKEN)
        except StorageIOError as e:
            logger.error("Failed to erase thing token: %s", e)
            failures["thing_token"] = e
        else:
            thing.clear_thing_token()

        try:
            _erase(source, keys.CREDENTIALS_THING_ID)
        except StorageIOError as e:
            logger.error("Failed to erase thing id: %s", e)
            failures["thing_id"] = e
        else:
            thing.clear_thing_id()

    if failures:
        raise PartialFailureError(failures, "Failed to clear device credentials")
    logger.info("Cleared thing credentials")
