"""이벤트 유형 상수

모든 이벤트는 그룹/멤버 레코드 커밋 이후에 발행된다.
"""


class EventTypes:
    """이벤트 유형 문자열 상수"""

    # === Membership events ===
    MEMBER_INVITED = "member_invited"
    MEMBER_JOINED = "member_joined"
    MEMBER_LEFT = "member_left"
    MEMBER_REMOVED = "member_removed"
    INVITE_WITHDRAWN = "invite_withdrawn"

    # === Quest events ===
    QUEST_INVITED = "quest_invited"
    QUEST_VOTED = "quest_voted"
    QUEST_STARTED = "quest_started"
    QUEST_PROGRESSED = "quest_progressed"
    QUEST_COMPLETED = "quest_completed"  # 보상 훅: data["member_ids"]
    QUEST_ABORTED = "quest_aborted"

    # === Fan-out ===
    FANOUT_PARTIAL_FAILURE = "fanout_partial_failure"
