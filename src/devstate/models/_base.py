"""Base model for devstate wire records.

Every published record inherits from :class:`DevstateModel`, which
provides:

* ``alias_generator=to_camel`` so snake_case attributes serialize to the
  camelCase keys downstream subscribers expect.
* ``frozen=True``: a record is never mutated after construction.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class DevstateModel(BaseModel):
    """Base for immutable wire records."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        alias_generator=to_camel,
    )
