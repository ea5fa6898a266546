from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field
from sqlmodel import Session, select

from pingclub.database import get_session
from pingclub.errors import NotFoundError, StateError
from pingclub.models.stage import H2hMode, StageRule, StageRulePreset
from pingclub.repository import CompetitionRepository
from pingclub.services.standings import validate_tie_break_order

router = APIRouter()

RULE_FIELDS = (
    "win_points",
    "loss_points",
    "draw_points",
    "bye_points",
    "count_walkover_as_played",
    "tie_break_order",
    "h2h_mode",
)


class RuleFields(BaseModel):
    win_points: Optional[int] = None
    loss_points: Optional[int] = None
    draw_points: Optional[int] = None
    bye_points: Optional[int] = None
    count_walkover_as_played: Optional[bool] = None
    tie_break_order: Optional[List[str]] = None
    h2h_mode: Optional[H2hMode] = None


class StageRuleUpdate(RuleFields):
    preset_id: Optional[int] = None


class PresetCreate(RuleFields):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    is_active: bool = True


class PresetUpdate(RuleFields):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    is_active: Optional[bool] = None


class StageRuleResponse(BaseModel):
    id: int
    stage_id: int
    win_points: int
    loss_points: int
    draw_points: int
    bye_points: int
    count_walkover_as_played: bool
    tie_break_order: List[str]
    h2h_mode: str

    class Config:
        from_attributes = True


class PresetResponse(BaseModel):
    id: int
    name: str
    description: Optional[str]
    is_active: bool
    win_points: int
    loss_points: int
    draw_points: int
    bye_points: int
    count_walkover_as_played: bool
    tie_break_order: List[str]
    h2h_mode: str
    created_at: datetime

    class Config:
        from_attributes = True


class StageResponse(BaseModel):
    id: int
    tournament_id: int
    name: str
    stage_type: str
    stage_order: int

    class Config:
        from_attributes = True


def _rule_changes(data: BaseModel) -> dict:
    changes = {k: v for k, v in data.model_dump(exclude_unset=True, mode="json").items() if k in RULE_FIELDS}
    if changes.get("tie_break_order") is not None:
        changes["tie_break_order"] = validate_tie_break_order(changes["tie_break_order"])
    return {k: v for k, v in changes.items() if v is not None}


def _get_preset(session: Session, preset_id: int) -> StageRulePreset:
    preset = session.get(StageRulePreset, preset_id)
    if not preset:
        raise NotFoundError(f"Stage rule preset {preset_id} not found")
    return preset


@router.get("/tournaments/{tournament_id}/stages", response_model=List[StageResponse])
def list_stages(tournament_id: int, session: Session = Depends(get_session)):
    repo = CompetitionRepository(session)
    repo.get_tournament(tournament_id)
    return repo.find_stages(tournament_id)


@router.get("/stages/{stage_id}/rules", response_model=StageRuleResponse)
def get_stage_rule(stage_id: int, session: Session = Depends(get_session)):
    repo = CompetitionRepository(session)
    repo.get_stage(stage_id)
    rule = repo.get_stage_rule(stage_id)
    if not rule:
        raise NotFoundError(f"Stage {stage_id} has no rule")
    return rule


@router.put("/stages/{stage_id}/rules", response_model=StageRuleResponse)
def set_stage_rule(stage_id: int, data: StageRuleUpdate, session: Session = Depends(get_session)):
    """Set a stage's rule directly, or copy it from a preset (explicit fields override the preset)"""
    repo = CompetitionRepository(session)
    with repo.transaction():
        repo.get_stage(stage_id)
        rule = repo.get_stage_rule(stage_id) or StageRule(stage_id=stage_id)
        if data.preset_id is not None:
            preset = _get_preset(session, data.preset_id)
            if not preset.is_active:
                raise StateError(f"Preset {preset.name} is inactive", code="PRESET_INACTIVE")
            for key in RULE_FIELDS:
                setattr(rule, key, getattr(preset, key))
            rule.tie_break_order = list(preset.tie_break_order)
        for key, value in _rule_changes(data).items():
            setattr(rule, key, value)
        session.add(rule)
    session.refresh(rule)
    return rule


@router.get("/stage-rule-presets", response_model=List[PresetResponse])
def list_presets(active_only: bool = False, session: Session = Depends(get_session)):
    query = select(StageRulePreset).order_by(StageRulePreset.name)
    if active_only:
        query = query.where(StageRulePreset.is_active == True)  # noqa: E712
    return session.exec(query).all()


@router.post("/stage-rule-presets", response_model=PresetResponse, status_code=201)
def create_preset(data: PresetCreate, session: Session = Depends(get_session)):
    repo = CompetitionRepository(session)
    with repo.transaction():
        existing = session.exec(select(StageRulePreset).where(StageRulePreset.name == data.name)).first()
        if existing:
            raise StateError(f"A preset named {data.name!r} already exists", code="PRESET_EXISTS")
        preset = StageRulePreset(name=data.name, description=data.description, is_active=data.is_active)
        for key, value in _rule_changes(data).items():
            setattr(preset, key, value)
        session.add(preset)
    session.refresh(preset)
    return preset


@router.get("/stage-rule-presets/{preset_id}", response_model=PresetResponse)
def get_preset(preset_id: int, session: Session = Depends(get_session)):
    return _get_preset(session, preset_id)


@router.patch("/stage-rule-presets/{preset_id}", response_model=PresetResponse)
def update_preset(preset_id: int, data: PresetUpdate, session: Session = Depends(get_session)):
    repo = CompetitionRepository(session)
    with repo.transaction():
        preset = _get_preset(session, preset_id)
        for key in ("name", "description", "is_active"):
            if key in data.model_fields_set and getattr(data, key) is not None:
                setattr(preset, key, getattr(data, key))
        for key, value in _rule_changes(data).items():
            setattr(preset, key, value)
        session.add(preset)
    session.refresh(preset)
    return preset


@router.delete("/stage-rule-presets/{preset_id}", status_code=204)
def delete_preset(preset_id: int, session: Session = Depends(get_session)):
    """Delete a preset. Stage rules copied from it are unaffected."""
    repo = CompetitionRepository(session)
    with repo.transaction():
        session.delete(_get_preset(session, preset_id))
    return Response(status_code=204)
