"""
linkmanager.services.link_form — Link Form Orchestration
=========================================================

Backs the admin "edit link" form.  A single submission may:
  * update an existing link, or create it when the ID no longer exists
  * create the placement named by the identifier field (or reuse it)
  * point that placement at the link, or drop the link's placement when
    the identifier was cleared

All of it happens in one transaction: either the whole form is saved or
nothing is.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlparse

import pydantic
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from linkmanager.constants import identifier_errors
from linkmanager.database.engine import get_session
from linkmanager.database.models import LinkType
from linkmanager.exceptions import (
    LinkManagerError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from linkmanager.services.cms_service import CmsContext, CmsUrlResolver
from linkmanager.services.link_service import LinkStore
from linkmanager.services.log_service import Actor
from linkmanager.services.placement_service import PlacementStore
from linkmanager.services.side_effects import non_fatal

logger = logging.getLogger(__name__)

# Message shown for a pydantic error on each field.
FIELD_MESSAGES: dict[str, str] = {
    "link_id": "Invalid link ID",
    "name": "Name is required",
    "link_type": "Invalid link type",
    "url": "Please enter a valid URL",
    "cms_page_id": "Invalid CMS page",
    "position": "Position must be a positive number",
    "active": "Invalid status",
    "identifier": "Invalid identifier",
}


def is_valid_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


# ---------------------------------------------------------------------------
# Pydantic schema
# ---------------------------------------------------------------------------
class LinkForm(BaseModel):
    link_id: int | None = None
    name: str = Field(min_length=1, max_length=255)
    link_type: LinkType = LinkType.CUSTOM
    url: str = ""
    cms_page_id: int | None = None
    position: int | None = Field(default=None, ge=0)
    active: bool = True
    identifier: str = ""

    @field_validator("link_id", "cms_page_id", "position", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("name", "url", "identifier", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Any:
        if value is None:
            return ""
        return value.strip() if isinstance(value, str) else value

    def problems(self) -> list[str]:
        """Cross-field rules pydantic's per-field checks can't express."""
        errors: list[str] = []
        if self.link_type == LinkType.CMS:
            if not self.cms_page_id:
                errors.append("CMS Page is required for CMS links")
        elif not self.url:
            errors.append(f"URL is required for {self.link_type.value} links")
        elif not is_valid_url(self.url):
            errors.append("Please enter a valid URL")
        if self.identifier:
            errors.extend(identifier_errors(self.identifier))
        return errors

    def link_data(self) -> dict[str, Any]:
        """Fields for :class:`LinkStore`, normalized for the link type."""
        is_cms = self.link_type == LinkType.CMS
        return {
            "name": self.name,
            "link_type": self.link_type.value,
            "url": "" if is_cms else self.url,
            "cms_page_id": self.cms_page_id if is_cms else None,
            "position": self.position,
            "active": self.active,
        }


def validate_form(fields: dict[str, Any]) -> LinkForm:
    """Parse submitted *fields*; raise :class:`ValidationError` with every problem."""
    try:
        form = LinkForm.model_validate(fields)
    except pydantic.ValidationError as exc:
        messages: list[str] = []
        for error in exc.errors():
            field = str(error["loc"][0]) if error["loc"] else ""
            message = FIELD_MESSAGES.get(field, error["msg"])
            if message not in messages:
                messages.append(message)
        raise ValidationError(messages) from exc

    errors = form.problems()
    if errors:
        raise ValidationError(errors)
    return form


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------
class LinkFormService:
    """Loads and saves the link form through the link and placement stores."""

    def __init__(
        self,
        engine: Engine,
        links: LinkStore,
        placements: PlacementStore,
        cms: CmsUrlResolver | None = None,
    ) -> None:
        self._engine = engine
        self._links = links
        self._placements = placements
        self._cms = cms

    def get_data(
        self, link_id: int | None = None, context: CmsContext | None = None,
    ) -> dict[str, Any]:
        """Initial form values: stored values for *link_id*, defaults otherwise."""
        data: dict[str, Any] = {
            "link_id": None,
            "name": "",
            "url": "",
            "link_type": LinkType.CUSTOM.value,
            "cms_page_id": None,
            "position": self._links.count() + 1,
            "active": True,
            "identifier": "",
        }
        if self._cms is not None:
            data["cms_pages"] = non_fatal("CMS page list", self._cms.list_pages, context) or {}

        if not link_id:
            return data

        try:
            link = self._links.get_by_id(link_id)
        except NotFoundError:
            logger.warning("Form requested for unknown link %s, using defaults", link_id)
            return data

        data.update(
            link_id=link.id,
            name=link.name,
            url=link.url,
            link_type=link.link_type,
            cms_page_id=link.cms_page_id,
            position=link.position,
            active=link.active,
        )
        if link.link_type == LinkType.CMS and link.cms_page_id and self._cms is not None:
            data["url"] = self._cms.resolve_url(link.cms_page_id, context)

        placement = non_fatal(
            "placement lookup", self._placements.get_placement_by_link_id, link.id,
        )
        if placement is not None:
            data["identifier"] = placement.identifier
        return data

    def save_data(
        self,
        fields: dict[str, Any],
        link_id: int | None = None,
        actor: Actor | None = None,
    ) -> int | bool:
        """Save the form.

        Returns the new link ID when a link was created, or the result of
        the update otherwise.  Raises :class:`ValidationError` for invalid
        input and :class:`StorageError` when the transaction failed.
        """
        form = validate_form(fields)
        if form.link_id and form.link_id > 0:
            link_id = form.link_id
        data = form.link_data()

        with get_session(self._engine) as session:
            result: int | bool | None = None
            saved_id: int | None = None

            if link_id:
                try:
                    with session.begin_nested():
                        self._links.get_by_id(link_id, session=session)
                        result = self._links.update(link_id, data, actor=actor, session=session)
                    saved_id = link_id
                except (NotFoundError, StorageError) as exc:
                    logger.info("Link %s not updatable (%s), creating a new one", link_id, exc)

            created = saved_id is None
            if created:
                saved_id = self._links.create(data, actor=actor, session=session)
                result = saved_id

            self._sync_placement(session, saved_id, form.identifier, created, actor)

        return result

    def save(
        self,
        fields: dict[str, Any],
        link_id: int | None = None,
        actor: Actor | None = None,
    ) -> list[str]:
        """Save the form and return the error messages to redisplay (empty on success)."""
        try:
            self.save_data(fields, link_id, actor)
        except ValidationError as exc:
            return exc.messages
        except (LinkManagerError, SQLAlchemyError) as exc:
            logger.error("Error saving link: %s", exc)
            return [f"Error saving link: {exc}"]
        return []

    def _sync_placement(
        self,
        session: Session,
        link_id: int,
        identifier: str,
        created: bool,
        actor: Actor | None,
    ) -> None:
        if identifier:
            placement = self._placements.get_by_identifier(identifier, session=session)
            if placement is not None:
                placement_id = placement.id
            else:
                placement_id = self._placements.create(
                    {
                        "identifier": identifier,
                        "name": f"Placement for link #{link_id}",
                        "description": f"Automatically created placement for link: {link_id}",
                        "active": True,
                    },
                    actor=actor,
                    session=session,
                )
            self._placements.associate_link(placement_id, link_id, actor=actor, session=session)
        elif not created:
            current = self._placements.get_placement_by_link_id(link_id, session=session)
            if current is not None:
                self._placements.dissociate_link(
                    current.id, link_id, actor=actor, session=session,
                )
