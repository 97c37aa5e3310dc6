"""그룹 관련 열거형"""

from enum import Enum


class GroupType(str, Enum):
    PARTY = "party"
    GUILD = "guild"
