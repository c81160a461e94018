"""CLAUDE.md rule API endpoints"""

import asyncio
import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from .. import rules
from ..dep import get_workspace
from ..schema.response import SuccessResponse
from ..schema.rules import AddRuleRequest, DeleteRuleRequest, RulesOut
from ..workspace import WorkspaceState

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rules", tags=["Rules"])

WorkspaceDep = Annotated[WorkspaceState, Depends(get_workspace)]


@router.get("/user", response_model=SuccessResponse[RulesOut])
async def get_user_rules():
    """Rules from ~/.claude/CLAUDE.md"""
    loaded = await asyncio.to_thread(rules.load_user_rules)
    return SuccessResponse(data=RulesOut(rules=loaded, path=str(rules.user_rules_path())))


@router.get("/project", response_model=SuccessResponse[RulesOut])
async def get_project_rules(workspace: WorkspaceDep):
    """Rules from the Project Notes section of <working directory>/CLAUDE.md"""
    loaded = await asyncio.to_thread(rules.load_project_rules, workspace.path)
    return SuccessResponse(
        data=RulesOut(rules=loaded, path=str(rules.project_rules_path(workspace.path)))
    )


@router.post("/user", response_model=SuccessResponse[RulesOut])
async def add_user_rule(request: AddRuleRequest):
    """Append a user rule

    Raises:
        ValidationError: Empty rule
    """
    await asyncio.to_thread(rules.add_user_rule, request.rule)
    return await get_user_rules()


@router.post("/project", response_model=SuccessResponse[RulesOut])
async def add_project_rule(request: AddRuleRequest, workspace: WorkspaceDep):
    """Append a project rule

    Raises:
        ValidationError: Empty rule
    """
    await asyncio.to_thread(rules.add_project_rule, request.rule, workspace.path)
    return await get_project_rules(workspace)


@router.post("/user/delete", response_model=SuccessResponse[RulesOut])
async def delete_user_rule(request: DeleteRuleRequest):
    """Delete the index-th user rule

    Raises:
        NotFoundError: Rules file missing
        ValidationError: Index out of range
    """
    await asyncio.to_thread(rules.delete_user_rule, request.index)
    return await get_user_rules()


@router.post("/project/delete", response_model=SuccessResponse[RulesOut])
async def delete_project_rule(request: DeleteRuleRequest, workspace: WorkspaceDep):
    """Delete the index-th rule of the Project Notes section

    Raises:
        NotFoundError: Rules file missing
        ValidationError: Index out of range
    """
    await asyncio.to_thread(rules.delete_project_rule, request.index, workspace.path)
    return await get_project_rules(workspace)
