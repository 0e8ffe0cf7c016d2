from __future__ import annotations

import enum
import json
from pathlib import Path
from typing import Any, Dict, List, Union

import pydantic
from pydantic import ConfigDict, Field, field_validator

from agen.utils.exceptions import InvalidManifestError

MANIFEST_FILENAME = 'plugin.json'


class PluginType(str, enum.Enum):
    AGENT = 'agent'
    SKILL = 'skill'
    WORKFLOW = 'workflow'
    BUNDLE = 'bundle'

    @classmethod
    def values(cls) -> List[str]:
        return [member.value for member in cls]

    def __str__(self) -> str:
        return self.value


class Plugin(pydantic.BaseModel):
    """Identity and descriptive record for one installed plugin.

    The same shape is used for ``plugin.json`` manifests and for the entries
    of the registry file. Unknown keys are ignored and missing optional keys
    take their empty value. Records are frozen; use ``model_copy(update=...)``
    to derive a changed record.
    """

    model_config = ConfigDict(extra='ignore', frozen=True)

    name: str
    version: str = ''
    description: str = ''
    author: str = ''
    source: str = ''
    type: PluginType = PluginType.BUNDLE
    installed_at: str = ''
    agents: List[str] = Field(default_factory=list)
    skills: List[str] = Field(default_factory=list)
    workflows: List[str] = Field(default_factory=list)
    metadata: Dict[str, str] = Field(default_factory=dict)

    @field_validator('name')
    def validate_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError('Plugin name must not be empty')
        return v

    @field_validator('version', 'description', 'author', 'source', 'installed_at', mode='before')
    def null_string_is_empty(cls, v: Any) -> Any:
        return '' if v is None else v

    @field_validator('agents', 'skills', 'workflows', 'metadata', mode='before')
    def null_collection_is_empty(cls, v: Any, info: pydantic.ValidationInfo) -> Any:
        if v is None:
            return {} if info.field_name == 'metadata' else []
        return v

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode='json')

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    def save(self, path: Union[str, Path]) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            f.write(self.to_json())
            f.write('\n')

    @classmethod
    def from_dict(cls, data: Any) -> Plugin:
        """Validate a decoded manifest object.

        Raises:
            InvalidManifestError: If ``data`` does not describe a plugin
        """
        if not isinstance(data, dict):
            raise InvalidManifestError(
                f'Invalid manifest data: expected a JSON object, got {type(data).__name__}'
            )
        try:
            return cls.model_validate(data)
        except pydantic.ValidationError as e:
            raise InvalidManifestError(
                f'Invalid manifest data: {e}',
                plugin_name=data.get('name') if isinstance(data.get('name'), str) else None,
            ) from e

    @classmethod
    def load(cls, path: Union[str, Path]) -> Plugin:
        path = Path(path)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise InvalidManifestError(f'Invalid manifest file {path}: {e}') from e
        except (OSError, UnicodeDecodeError) as e:
            raise InvalidManifestError(f'Cannot read manifest file {path}: {e}') from e
        return cls.from_dict(data)
