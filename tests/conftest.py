"""
Pytest configuration and shared fixtures.
"""
import pytest
from datetime import date, datetime, timedelta
from typing import List

from fertyfit.config import EngineSettings
from fertyfit.models.course import CourseModule, Lesson
from fertyfit.models.daily_log import DailyLog
from fertyfit.models.notification import NotificationType
from fertyfit.models.profile import UserProfile
from fertyfit.models.rule import Rule, RuleMessage, Trigger
from fertyfit.services.store import InMemoryNotificationStore

class FakeClock:
    """Callable clock that tests can move forward."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, days: int = 0, hours: int = 0) -> None:
        self.now += timedelta(days=days, hours=hours)

def make_rule(
    rule_id: str,
    trigger: Trigger = Trigger.DAILY_CHECK,
    priority: int = 2,
    cooldown_days: int = 0,
    condition=lambda ctx: True,
    **kwargs
) -> Rule:
    """Build a minimal rule for engine tests."""
    return Rule(
        id=rule_id,
        triggers=frozenset({trigger}),
        type=NotificationType.TIP,
        priority=priority,
        cooldown_days=cooldown_days,
        condition=condition,
        message=lambda ctx: RuleMessage(title=f"{rule_id} title", message=f"{rule_id} body"),
        **kwargs
    )

@pytest.fixture
def clock() -> FakeClock:
    """Clock fixed at 2024-01-15 09:00."""
    return FakeClock(datetime(2024, 1, 15, 9, 0))

@pytest.fixture
def store(clock) -> InMemoryNotificationStore:
    """Empty in-memory store sharing the test clock."""
    return InMemoryNotificationStore(clock=clock)

@pytest.fixture
def settings() -> EngineSettings:
    """Default engine settings, independent of the environment."""
    return EngineSettings()

@pytest.fixture
def sample_user() -> UserProfile:
    """Create a sample user with complete cycle data."""
    return UserProfile(
        user_id="123",
        name="Test User",
        age=32,
        weight=60,
        height=165,
        cycle_length=28,
        last_period_date=date(2024, 1, 1),
        time_trying_start_date=date(2023, 6, 1),
        time_trying_initial_months=3
    )

@pytest.fixture
def user_without_cycle() -> UserProfile:
    """Create a user who has not entered any cycle data."""
    return UserProfile(user_id="456", name="New User", age=30)

@pytest.fixture
def consecutive_logs() -> List[DailyLog]:
    """Create logs for 2024-01-11..2024-01-15 with moderate habits."""
    return [
        DailyLog(
            user_id="123",
            date=date(2024, 1, 11) + timedelta(days=i),
            sleep_hours=7.5,
            stress_level=2,
            water_glasses=6,
            veggie_servings=3
        )
        for i in range(5)
    ]

@pytest.fixture
def course_modules() -> List[CourseModule]:
    """Create two course modules with two lessons each."""
    return [
        CourseModule(
            id=1,
            title="Tu ciclo",
            order_index=1,
            lessons=[
                Lesson(id=11, module_id=1, title="Fases"),
                Lesson(id=12, module_id=1, title="Ovulación"),
            ]
        ),
        CourseModule(
            id=2,
            title="Nutrición",
            order_index=2,
            lessons=[
                Lesson(id=21, module_id=2, title="Proteínas"),
                Lesson(id=22, module_id=2, title="Grasas"),
            ]
        ),
    ]

@pytest.fixture
def lambda_context():
    """Minimal Lambda context accepted by Logger.inject_lambda_context."""
    class LambdaContext:
        function_name = "fertyfit-evaluate"
        function_version = "$LATEST"
        memory_limit_in_mb = 128
        invoked_function_arn = "arn:aws:lambda:eu-west-1:123456789012:function:fertyfit-evaluate"
        aws_request_id = "52fdfc07-2182-154f-163f-5f0f9a621d72"

    return LambdaContext()
