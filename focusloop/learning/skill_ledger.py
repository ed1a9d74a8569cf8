"""
Skill Ledger - authoritative per-learner skill mastery records.

One Skill exists per (student, domain). All mutation flows through
SkillLedger.apply_delta and SkillLedger.apply_attempt, which perform an atomic
read-modify-write (store write included) under a per-(student, domain) lock
and clamp:

- mastery into [0, 100]
- decay_rate into [0.05, 0.50]

The ledger keeps the in-memory copy authoritative. Store write failures are
logged and handed to the persistence outbox; they never undo an update.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from loguru import logger

from focusloop.core.clock import Clock, SystemClock
from focusloop.core.enums import AnswerStyle, ConfidenceLevel, Correctness, Difficulty
from focusloop.core.errors import CollaboratorUnavailable, NotFound, ValidationError
from focusloop.core.locks import KeyedLocks

if TYPE_CHECKING:
    from focusloop.db.outbox import PersistenceOutbox
    from focusloop.db.store import Store
    from focusloop.learning.grading import GradedAttempt


MASTERY_MIN = 0.0
MASTERY_MAX = 100.0
DECAY_MIN = 0.05
DECAY_MAX = 0.50
DEFAULT_DECAY_RATE = 0.15


@dataclass(frozen=True)
class CurriculumEntry:
    """Seed definition for a skill a new learner starts with."""

    domain: str
    category: str
    display_name: str
    decay_rate: float


# Grade 3-6 math starter curriculum
DEFAULT_CURRICULUM: tuple[CurriculumEntry, ...] = (
    CurriculumEntry("fractions_comparison", "math", "Comparing Fractions", 0.15),
    CurriculumEntry("fractions_addition", "math", "Adding Fractions", 0.20),
    CurriculumEntry("multiplication_facts", "math", "Multiplication Facts", 0.10),
    CurriculumEntry("word_problems_multi_step", "math", "Multi-Step Word Problems", 0.25),
    CurriculumEntry("decimals_place_value", "math", "Decimal Place Value", 0.18),
)

_SEED_DECAY = {entry.domain: entry for entry in DEFAULT_CURRICULUM}


def clamp_mastery(value: float) -> float:
    return max(MASTERY_MIN, min(MASTERY_MAX, value))


def clamp_decay(value: float) -> float:
    return max(DECAY_MIN, min(DECAY_MAX, value))


def _parse_dt(value: str | datetime | None) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


@dataclass
class Skill:
    """Long-term mastery estimate for one learner in one domain."""

    id: str
    student_id: str
    domain: str
    category: str = "general"
    display_name: str = ""
    mastery: float = 0.0
    decay_rate: float = DEFAULT_DECAY_RATE
    last_seen: datetime | None = None
    total_attempts: int = 0
    correct_attempts: int = 0
    typical_answer_style: AnswerStyle | None = None
    average_time_seconds: float | None = None
    timed_attempts: int = 0

    def __post_init__(self):
        self.mastery = clamp_mastery(float(self.mastery))
        self.decay_rate = clamp_decay(float(self.decay_rate))
        if not self.display_name:
            self.display_name = self.domain.replace("_", " ").title()

    @property
    def confidence(self) -> ConfidenceLevel:
        return ConfidenceLevel.from_mastery(self.mastery)

    @property
    def difficulty(self) -> Difficulty:
        return Difficulty.from_mastery(self.mastery)

    @property
    def accuracy(self) -> float:
        if self.total_attempts == 0:
            return 0.0
        return self.correct_attempts / self.total_attempts

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "student_id": self.student_id,
            "domain": self.domain,
            "category": self.category,
            "display_name": self.display_name,
            "mastery": self.mastery,
            "confidence": self.confidence.value,
            "decay_rate": self.decay_rate,
            "last_seen": self.last_seen.isoformat() if self.last_seen else None,
            "total_attempts": self.total_attempts,
            "correct_attempts": self.correct_attempts,
            "typical_answer_style": (
                self.typical_answer_style.value if self.typical_answer_style else None
            ),
            "average_time_seconds": self.average_time_seconds,
            "timed_attempts": self.timed_attempts,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Skill:
        style = data.get("typical_answer_style")
        return cls(
            id=data["id"],
            student_id=data["student_id"],
            domain=data["domain"],
            category=data.get("category", "general"),
            display_name=data.get("display_name", ""),
            mastery=data.get("mastery", 0.0),
            decay_rate=data.get("decay_rate", DEFAULT_DECAY_RATE),
            last_seen=_parse_dt(data.get("last_seen")),
            total_attempts=data.get("total_attempts", 0),
            correct_attempts=data.get("correct_attempts", 0),
            typical_answer_style=AnswerStyle(style) if style else None,
            average_time_seconds=data.get("average_time_seconds"),
            timed_attempts=data.get("timed_attempts", 0),
        )

    def copy(self) -> Skill:
        return Skill.from_dict(self.to_dict())


def seed_decay_rate(domain: str) -> float:
    """Initial decay rate for a domain (curriculum seed, else the default)."""
    entry = _SEED_DECAY.get(domain)
    return entry.decay_rate if entry else DEFAULT_DECAY_RATE


@dataclass(frozen=True)
class AppliedAttempt:
    """Outcome of SkillLedger.apply_attempt."""

    skill: Skill
    mastery_delta: int
    previous_average_time: float | None


class SkillLedger:
    """
    Owns Skill records for every learner.

    Skills are loaded from the store lazily on first access per student and
    then served from memory. Writers on the same (student, domain) are
    serialized; different domains update in parallel.
    """

    def __init__(
        self,
        store: Store,
        clock: Clock | None = None,
        outbox: PersistenceOutbox | None = None,
    ):
        self.store = store
        self.clock = clock or SystemClock()
        self.outbox = outbox
        self._locks = KeyedLocks()
        self._student_locks = KeyedLocks()
        self._skills: dict[str, dict[str, Skill]] = {}

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _ensure_loaded(self, student_id: str) -> dict[str, Skill]:
        with self._student_locks.hold(student_id):
            cached = self._skills.get(student_id)
            if cached is not None:
                return cached
            loaded = self.store.load_skills(student_id)
            cached = {skill.id: skill for skill in loaded}
            self._skills[student_id] = cached
            logger.debug(f"Loaded {len(cached)} skills for student {student_id}")
            return cached

    def list_skills(self, student_id: str) -> list[Skill]:
        """Snapshot of the learner's skills, ordered by domain."""
        _require(student_id, "student_id")
        skills = self._ensure_loaded(student_id)
        return sorted((s.copy() for s in skills.values()), key=lambda s: s.domain)

    def get_skill(self, student_id: str, skill_id: str) -> Skill:
        skills = self._ensure_loaded(student_id)
        skill = skills.get(skill_id)
        if skill is None:
            raise NotFound(f"Skill {skill_id} not found", student_id=student_id, skill_id=skill_id)
        return skill.copy()

    def find_by_domain(self, student_id: str, domain: str) -> Skill | None:
        for skill in self._ensure_loaded(student_id).values():
            if skill.domain == domain:
                return skill
        return None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def get_or_create(
        self,
        student_id: str,
        domain: str,
        category: str | None = None,
        display_name: str | None = None,
    ) -> Skill:
        """
        Return the learner's skill for a domain, creating it on first encounter.

        New skills start at mastery 0 with the domain's seed decay rate.
        """
        _require(student_id, "student_id")
        _require(domain, "domain")

        with self._locks.hold((student_id, domain)):
            existing = self.find_by_domain(student_id, domain)
            if existing is not None:
                return existing.copy()

            seed = _SEED_DECAY.get(domain)
            skill = Skill(
                id=str(uuid.uuid4()),
                student_id=student_id,
                domain=domain,
                category=category or (seed.category if seed else "general"),
                display_name=display_name or (seed.display_name if seed else ""),
                mastery=0.0,
                decay_rate=seed_decay_rate(domain),
            )
            with self._student_locks.hold(student_id):
                self._skills[student_id][skill.id] = skill
            self._persist(skill)
            logger.info(f"Created skill {domain} for student {student_id}")
            return skill.copy()

    def seed_curriculum(self, student_id: str) -> list[Skill]:
        """Create the default curriculum skills a learner does not have yet."""
        return [
            self.get_or_create(student_id, entry.domain, entry.category, entry.display_name)
            for entry in DEFAULT_CURRICULUM
        ]

    def apply_delta(
        self,
        student_id: str,
        skill_id: str,
        mastery_delta: float,
        new_decay_rate: float,
        attempt: GradedAttempt | None = None,
        time_seconds: float | None = None,
    ) -> Skill:
        """
        Apply a graded mastery change to a skill.

        Args:
            student_id: Owner of the skill
            skill_id: Skill to update
            mastery_delta: Signed change in mastery points
            new_decay_rate: Decay rate after the attempt
            attempt: Graded attempt (updates counters and answer style)
            time_seconds: Time to answer (updates the running average)

        Returns:
            Snapshot of the updated skill

        Raises:
            NotFound: If the skill id is unknown for this student
        """
        domain = self.get_skill(student_id, skill_id).domain
        with self._locks.hold((student_id, domain)):
            skill = self._ensure_loaded(student_id)[skill_id]
            return self._apply_locked(skill, mastery_delta, new_decay_rate, attempt, time_seconds)

    def apply_attempt(
        self,
        student_id: str,
        skill_id: str,
        attempt: GradedAttempt,
        time_seconds: float | None = None,
    ) -> AppliedAttempt:
        """
        Map a graded attempt against the skill's current decay rate and apply it.

        The read, the mapping and the write happen under the skill's lock, so
        concurrent attempts on one skill each see the previous one's result.
        """
        from focusloop.learning.grading import map_to_delta

        domain = self.get_skill(student_id, skill_id).domain
        with self._locks.hold((student_id, domain)):
            skill = self._ensure_loaded(student_id)[skill_id]
            previous_average = skill.average_time_seconds
            update = map_to_delta(attempt, skill.decay_rate)
            snapshot = self._apply_locked(
                skill, update.mastery_delta, update.new_decay_rate, attempt, time_seconds
            )
        return AppliedAttempt(
            skill=snapshot,
            mastery_delta=update.mastery_delta,
            previous_average_time=previous_average,
        )

    def _apply_locked(
        self,
        skill: Skill,
        mastery_delta: float,
        new_decay_rate: float,
        attempt: GradedAttempt | None,
        time_seconds: float | None,
    ) -> Skill:
        old_mastery = skill.mastery

        skill.mastery = clamp_mastery(skill.mastery + mastery_delta)
        skill.decay_rate = clamp_decay(new_decay_rate)
        skill.last_seen = self.clock.now()

        if attempt is not None:
            skill.total_attempts += 1
            if attempt.correctness == Correctness.CORRECT:
                skill.correct_attempts += 1
            skill.typical_answer_style = attempt.answer_style

        if time_seconds is not None and time_seconds >= 0:
            skill.timed_attempts += 1
            if skill.average_time_seconds is None:
                skill.average_time_seconds = float(time_seconds)
            else:
                skill.average_time_seconds += (
                    time_seconds - skill.average_time_seconds
                ) / skill.timed_attempts

        snapshot = skill.copy()
        logger.debug(
            f"Skill {snapshot.domain} for {skill.student_id}: "
            f"{old_mastery:.1f} -> {snapshot.mastery:.1f} (decay {snapshot.decay_rate:.2f})"
        )
        self._persist(snapshot)
        return snapshot

    def _persist(self, skill: Skill) -> None:
        """Save a snapshot. Callers hold the skill's lock."""
        label = f"save_skill:{skill.id}"
        snapshot = skill.copy()
        try:
            self.store.save_skill(snapshot)
        except CollaboratorUnavailable as e:
            logger.warning(f"Skill write for {skill.domain} deferred: {e}")
            if self.outbox is not None:
                key = (skill.student_id, skill.domain)
                self.outbox.enqueue(
                    label,
                    lambda: self.store.save_skill(snapshot),
                    guard=lambda: self._locks.hold(key),
                )
            return

        if self.outbox is not None:
            self.outbox.discard(label)


def _require(value: str | None, name: str) -> None:
    if not value or not str(value).strip():
        raise ValidationError(f"{name} is required", field=name)
