"""CLAUDE.md rule schemas"""

from typing import List

from pydantic import BaseModel, Field


class AddRuleRequest(BaseModel):
    """Request schema for appending a rule"""
    rule: str = Field(..., description="Rule text (without the leading '- ')")


class DeleteRuleRequest(BaseModel):
    """Request schema for deleting a rule by position"""
    index: int = Field(..., ge=0, description="Zero-based index in the rules list")


class RulesOut(BaseModel):
    """Rules in file order"""
    rules: List[str]
    path: str
