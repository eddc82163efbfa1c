import json
import logging
import os
import stat
import tempfile
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, PrivateAttr, ValidationError, model_validator

logger = logging.getLogger("record_store")

# input spellings written back under a different key
OUTPUT_KEYS = {
    'contractOrAccountId': 'contractAddress',
    'contract_address': 'contractAddress',
    'token_balance': 'tokenBalance',
}


class StoreIOError(Exception):
    """The record list could not be read, parsed or written."""


class NetworkRecord(BaseModel):
    """
    One display entry of the links file. Keys this model does not know about
    (imageClass, ...) are kept and written back unchanged.
    """
    model_config = ConfigDict(extra='allow', populate_by_name=True)

    name: str
    url: Optional[str] = None
    image: Optional[str] = None
    category: Optional[str] = None
    contract_address: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices('contractAddress', 'contractOrAccountId', 'contract_address'),
        serialization_alias='contractAddress',
    )
    token_balance: Optional[float] = Field(default=None, alias='tokenBalance')

    _key_order: List[str] = PrivateAttr(default_factory=list)

    @model_validator(mode='wrap')
    @classmethod
    def _remember_key_order(cls, data, handler):
        record = handler(data)
        if isinstance(data, dict):
            record._key_order = [OUTPUT_KEYS.get(key, key) for key in data]
        return record

    def to_json_dict(self) -> dict:
        data = self.model_dump(by_alias=True)
        # drop known fields that were neither in the file nor assigned since
        for field_name, field in NetworkRecord.model_fields.items():
            if field_name not in self.model_fields_set:
                data.pop(field.serialization_alias or field.alias or field_name, None)
        balance = data.get('tokenBalance')
        # keep whole numbers as JSON integers
        if isinstance(balance, float) and balance.is_integer():
            data['tokenBalance'] = int(balance)

        # keys from the file keep their position, new keys go last
        ordered = {key: data.pop(key) for key in self._key_order if key in data}
        ordered.update(data)
        return ordered


class RecordStore:
    """
    JSON file holding the ordered list of display records.
    Read once at the start of a run and rewritten in full at the end.
    """

    def __init__(self, path: str):
        self.path = path

    def load(self) -> List[NetworkRecord]:
        try:
            with open(self.path, encoding='utf-8') as f:
                data = json.load(f)
        except OSError as e:
            raise StoreIOError(f"Cannot read record store {self.path}: {e}") from e
        except json.JSONDecodeError as e:
            raise StoreIOError(f"Record store {self.path} is not valid JSON: {e}") from e

        if not isinstance(data, list):
            raise StoreIOError(f"Record store {self.path} must contain a JSON array, got {type(data).__name__}")

        try:
            records = [NetworkRecord.model_validate(item) for item in data]
        except ValidationError as e:
            raise StoreIOError(f"Invalid record in {self.path}: {e}") from e

        logger.info(f"Loaded {len(records)} records from {self.path}")
        return records

    def _target_mode(self) -> int:
        try:
            return stat.S_IMODE(os.stat(self.path).st_mode)
        except FileNotFoundError:
            umask = os.umask(0)
            os.umask(umask)
            return 0o666 & ~umask

    def save(self, records: List[NetworkRecord]) -> None:
        try:
            content = json.dumps([record.to_json_dict() for record in records], indent=4, ensure_ascii=False, allow_nan=False) + '\n'
        except ValueError as e:
            raise StoreIOError(f"Refusing to write non-finite balance to {self.path}: {e}") from e
        directory = os.path.dirname(os.path.abspath(self.path))

        tmp_path = None
        try:
            with tempfile.NamedTemporaryFile('w', encoding='utf-8', dir=directory, suffix='.tmp', delete=False) as f:
                tmp_path = f.name
                f.write(content)
            # NamedTemporaryFile creates 0600, keep the mode of the file being replaced
            os.chmod(tmp_path, self._target_mode())
            os.replace(tmp_path, self.path)
        except OSError as e:
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise StoreIOError(f"Cannot write record store {self.path}: {e}") from e

        logger.info(f"Saved {len(records)} records to {self.path}")
