"""
Personas: named learning scopes, each with a recipe of default opinions.

Exactly one persona is active at a time. Switching the active persona never
touches learned weights; each scope keeps its own.
"""

import json
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional

from sqlalchemy import func

from .database import Persona
from .logger import get_logger
from .schema import ValidationError, ensure_scope

logger = get_logger()


@dataclass
class Recipe:
    positive_highlights: List[str] = field(default_factory=list)
    negative_highlights: List[str] = field(default_factory=list)
    red_flags: List[str] = field(default_factory=list)
    weights: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "Recipe":
        data = data or {}
        return cls(
            positive_highlights=list(data.get("positive_highlights") or []),
            negative_highlights=list(data.get("negative_highlights") or []),
            red_flags=list(data.get("red_flags") or []),
            weights={k: float(v) for k, v in (data.get("weights") or {}).items()},
        )


@dataclass(frozen=True)
class PersonaView:
    id: str
    name: str
    description: str
    recipe: Recipe
    is_active: bool

    @classmethod
    def from_row(cls, row: Persona) -> "PersonaView":
        return cls(
            id=row.id,
            name=row.name,
            description=row.description or "",
            recipe=Recipe.from_dict(row.recipe),
            is_active=bool(row.is_active),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "recipe": self.recipe.to_dict(),
        }


DEFAULT_PERSONAS = (
    {
        "id": "early",
        "name": "Early Stage VC",
        "description": "Pre-seed to Seed investors looking for exceptional founders",
        "recipe": Recipe(
            positive_highlights=[
                "serial_founder", "prior_exit", "yc_alumni",
                "techstars_alumni", "unicorn_experience", "fortune_500_experience",
            ],
            negative_highlights=["no_linkedin", "career_gap", "short_tenure"],
            red_flags=["stealth_only", "no_experience", "junior_level"],
            weights={
                "serial_founder": 0.95, "prior_exit": 0.90, "yc_alumni": 0.85, "unicorn_experience": 0.85,
                "no_linkedin": -0.30, "career_gap": -0.20, "stealth_only": -0.50, "no_experience": -0.80,
            },
        ),
    },
    {
        "id": "growth",
        "name": "Growth Stage VC",
        "description": "Series A to C investors looking for proven operators",
        "recipe": Recipe(
            positive_highlights=[
                "scaled_company", "revenue_growth", "team_builder", "market_leader", "enterprise_sales",
            ],
            negative_highlights=["early_stage_only", "no_scale_experience", "single_company"],
            red_flags=["no_revenue_experience", "startup_hopper"],
            weights={
                "scaled_company": 0.90, "revenue_growth": 0.85, "team_builder": 0.80,
                "early_stage_only": -0.40, "no_revenue_experience": -0.60,
            },
        ),
    },
    {
        "id": "pe",
        "name": "Private Equity",
        "description": "PE investors looking for operational excellence",
        "recipe": Recipe(
            positive_highlights=[
                "fortune_500_executive", "turnaround_experience", "ceo_experience", "cfo_experience", "ma_experience",
            ],
            negative_highlights=["startup_only", "no_p_and_l", "tech_only"],
            red_flags=["no_corporate_experience", "junior_roles_only"],
            weights={
                "fortune_500_executive": 0.85, "turnaround_experience": 0.90, "ceo_experience": 0.90,
                "startup_only": -0.50, "no_corporate_experience": -0.60,
            },
        ),
    },
    {
        "id": "ib",
        "name": "Investment Banker",
        "description": "IB professionals looking for M&A and IPO candidates",
        "recipe": Recipe(
            positive_highlights=["market_leader", "high_growth", "profitable", "ipo_ready", "strategic_asset"],
            negative_highlights=["early_stage", "pre_revenue", "single_product"],
            red_flags=["declining_growth", "no_clear_exit"],
            weights={
                "market_leader": 0.90, "high_growth": 0.80, "profitable": 0.85, "ipo_ready": 0.90,
                "early_stage": -0.50, "declining_growth": -0.70,
            },
        ),
    },
)

DEFAULT_ACTIVE = "early"


class PersonaRegistry:
    def __init__(self, session_factory):
        self._session_factory = session_factory

    def seed(self) -> int:
        """Insert missing default personas. Existing rows are left alone.

        Returns:
            Number of personas inserted
        """
        inserted = 0
        with self._session_factory() as session:
            with session.begin():
                has_active = session.query(Persona).filter_by(is_active=True).first() is not None
                for position, default in enumerate(DEFAULT_PERSONAS):
                    if session.get(Persona, default["id"]) is not None:
                        continue
                    session.add(
                        Persona(
                            id=default["id"],
                            name=default["name"],
                            description=default["description"],
                            recipe_json=json.dumps(default["recipe"].to_dict()),
                            is_active=not has_active and default["id"] == DEFAULT_ACTIVE,
                            position=position,
                        )
                    )
                    inserted += 1
        if inserted:
            logger.info("Seeded personas", count=inserted)
        return inserted

    def add(self, persona_id: str, name: str, description: str = "", recipe: Optional[Recipe] = None) -> PersonaView:
        ensure_scope(persona_id)
        with self._session_factory() as session:
            with session.begin():
                if session.get(Persona, persona_id) is not None:
                    raise ValidationError([f"Persona '{persona_id}' already exists"])
                last = session.query(func.max(Persona.position)).scalar()
                row = Persona(
                    id=persona_id,
                    name=name or persona_id,
                    description=description,
                    recipe_json=json.dumps((recipe or Recipe()).to_dict()),
                    is_active=False,
                    position=(last or 0) + 1,
                )
                session.add(row)
            return PersonaView.from_row(row)

    def list(self) -> List[PersonaView]:
        with self._session_factory() as session:
            rows = session.query(Persona).order_by(Persona.position, Persona.id).all()
            return [PersonaView.from_row(r) for r in rows]

    def get(self, persona_id: str) -> Optional[PersonaView]:
        with self._session_factory() as session:
            row = session.get(Persona, persona_id)
            return PersonaView.from_row(row) if row is not None else None

    def active(self) -> Optional[PersonaView]:
        with self._session_factory() as session:
            row = session.query(Persona).filter_by(is_active=True).first()
            return PersonaView.from_row(row) if row is not None else None

    def activate(self, persona_id: str) -> PersonaView:
        """Make persona_id the only active persona."""
        with self._session_factory() as session:
            with session.begin():
                row = session.get(Persona, persona_id)
                if row is None:
                    raise ValidationError([f"Unknown persona '{persona_id}'"])
                session.query(Persona).filter(Persona.id != persona_id).update(
                    {Persona.is_active: False}, synchronize_session=False
                )
                row.is_active = True
            logger.info("Persona activated", persona=persona_id)
            return PersonaView.from_row(row)
