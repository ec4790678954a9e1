"""Default state tree construction."""

from __future__ import annotations

import copy
from typing import Any

from pydantic import BaseModel, ConfigDict

from pydatalayer.config import ProjectProfile


class PageContext(BaseModel):
    """Identity of the page the session is currently on."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    path: str = "/"
    query: str = ""
    title: str = ""

    @property
    def full_path(self) -> str:
        if not self.query:
            return self.path
        query = self.query if self.query.startswith("?") else f"?{self.query}"
        return f"{self.path}{query}"


def build_default_tree(project: ProjectProfile) -> dict[str, Any]:
    """Return a freshly constructed state tree for *project*."""
    return {
        "projectName": project.project_name,
        "project": {
            "id": project.id,
            "title": project.title,
            "template": project.template,
            "locale": project.locale,
            "currency": project.currency,
            "projectName": project.project_name,
        },
        "page": {"name": "home", "title": "HOME"},
        "cart": {},
        "product": {},
        "partnerData": copy.deepcopy(dict(project.partner_data)),
        "personalEmail": {"address": ""},
        "mobilePhone": {"number": ""},
        "homeAddress": {"street1": "", "city": "", "postalCode": ""},
        "person": {
            "gender": "",
            "birthDayAndMonth": "",
            "loyaltyConsent": False,
            "name": {"firstName": "", "lastName": ""},
        },
        "individualCharacteristics": {
            "retail": {"shoeSize": "", "shirtSize": "", "favoriteColor": ""},
        },
        "consents": {
            "marketing": {
                "call": {"val": True},
                "email": {"val": True},
                "sms": {"val": True},
            },
        },
    }


def stamp_page(tree: dict[str, Any], page: PageContext) -> dict[str, Any]:
    """Return *tree* with its ``page`` section describing *page*."""
    section = tree.get("page")
    stamped = dict(section) if isinstance(section, dict) else {}
    stamped["title"] = page.title
    stamped["name"] = page.title.lower()
    stamped["path"] = page.path
    return {**tree, "page": stamped}
