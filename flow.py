"""
PediaGPS: Flow Navigator
========================
Flattens the active flow policy into one question sequence and keeps the
cursor. The navigator never touches findings, interventions or flags:
moving back only moves the pointer.
"""

import logging
from typing import Any, Dict, List, Optional

from constants import Phase, SAFETY_CRITICAL_PHASES
from questions import MAIN_PROBLEM_QUESTION_ID, PATHWAY_BY_PROBLEM, QuestionGraph
from models import Question

logger = logging.getLogger("pediagps.flow")


class FlowPolicy:
    """Strategy deciding which phases are visited, in which order."""

    def __init__(self, graph: QuestionGraph):
        self.graph = graph

    def phase_order(self) -> List[Phase]:
        raise NotImplementedError

    def expected_length(self) -> int:
        """Denominator for progress. Must never grow while moving forward."""
        return len(self.graph.ids_for(self.phase_order()))

    def on_answer(self, question_id: str, answer: Any) -> None:
        """Hook for answers that change the route. Default: fixed route."""
        return None

    def reset(self) -> None:
        return None


class AbcdeFlowPolicy(FlowPolicy):
    ORDER = [
        Phase.SIGNS_OF_LIFE,
        Phase.AIRWAY,
        Phase.BREATHING,
        Phase.CIRCULATION,
        Phase.DISABILITY,
        Phase.EXPOSURE,
    ]

    def phase_order(self) -> List[Phase]:
        return list(self.ORDER)


class BranchingFlowPolicy(FlowPolicy):
    """
    Triage -> main problem -> the pathway picked by the 'main_problem' answer.
    Until the branch is known the longest pathway stands in as the tail,
    so progress can only go up once the real pathway is chosen.
    """
    HEAD = [Phase.TRIAGE, Phase.PROBLEM_IDENTIFICATION]

    def __init__(self, graph: QuestionGraph):
        super().__init__(graph)
        self.pathway: Optional[Phase] = None
        self._decided = False

    def phase_order(self) -> List[Phase]:
        if self.pathway is None:
            return list(self.HEAD)
        return list(self.HEAD) + [self.pathway]

    def expected_length(self) -> int:
        head = len(self.graph.ids_for(self.HEAD))
        if self._decided:
            tail = len(self.graph.phases.get(self.pathway, ())) if self.pathway else 0
            return head + tail
        longest = max(len(self.graph.phases.get(p, ())) for p in PATHWAY_BY_PROBLEM.values())
        return head + longest

    def select(self, problem: Optional[str]) -> None:
        self.pathway = PATHWAY_BY_PROBLEM.get(problem) if problem is not None else None
        self._decided = True
        logger.info("Main problem %r -> pathway %s", problem,
                    self.pathway.value if self.pathway else "none")

    def on_answer(self, question_id: str, answer: Any) -> None:
        # Re-answering after 'back' reselects the pathway
        if question_id == MAIN_PROBLEM_QUESTION_ID:
            self.select(answer)

    def reset(self) -> None:
        self.pathway = None
        self._decided = False


class FlowNavigator:
    """
    Cursor over the flattened sequence. phase is SETUP before start and
    COMPLETE after the last question.
    """

    def __init__(self, policy: FlowPolicy):
        self.policy = policy
        self.graph = policy.graph
        self.current_id: Optional[str] = None
        self.phase: Phase = Phase.SETUP

    # --- Queries ---

    def sequence(self) -> List[str]:
        return self.graph.ids_for(self.policy.phase_order())

    def first(self) -> Optional[str]:
        seq = self.sequence()
        return seq[0] if seq else None

    def contains(self, question_id: Optional[str]) -> bool:
        return question_id in self.sequence()

    def next(self, question_id: str) -> Optional[str]:
        seq = self.sequence()
        if question_id not in seq:
            return None
        idx = seq.index(question_id)
        return seq[idx + 1] if idx + 1 < len(seq) else None

    def previous(self, question_id: str) -> Optional[str]:
        seq = self.sequence()
        if question_id not in seq:
            return None
        idx = seq.index(question_id)
        return seq[idx - 1] if idx > 0 else None

    def phase_of(self, question_id: Optional[str]) -> Phase:
        question = self.graph.get(question_id)
        return question.phase if question else Phase.SETUP

    def current(self) -> Optional[Question]:
        if self.phase in (Phase.SETUP, Phase.COMPLETE):
            return None
        return self.graph.get(self.current_id)

    def progress(self) -> float:
        if self.phase == Phase.COMPLETE:
            return 1.0
        if self.phase == Phase.SETUP or self.current_id is None:
            return 0.0
        seq = self.sequence()
        total = self.policy.expected_length()
        if not total or self.current_id not in seq:
            return 0.0
        return min(seq.index(self.current_id) / total, 1.0)

    @property
    def is_complete(self) -> bool:
        return self.phase == Phase.COMPLETE

    @property
    def in_safety_critical_phase(self) -> bool:
        return self.phase in SAFETY_CRITICAL_PHASES

    # --- Transitions ---

    def start(self) -> Optional[str]:
        self._move_to(self.first())
        return self.current_id

    def advance(self) -> Optional[str]:
        """Move to the next question, or to COMPLETE after the last one."""
        if self.current_id is None:
            return None
        next_id = self.next(self.current_id)
        if next_id is None:
            self.phase = Phase.COMPLETE
            logger.info("Assessment complete after '%s'", self.current_id)
            return None
        self._move_to(next_id)
        return next_id

    def go_back(self) -> bool:
        if self.phase in (Phase.SETUP, Phase.COMPLETE) or self.current_id is None:
            return False
        if self.in_safety_critical_phase:
            logger.warning("Back refused in safety-critical phase %s", self.phase.value)
            return False
        prev_id = self.previous(self.current_id)
        if prev_id is None:
            return False
        self._move_to(prev_id)
        return True

    def jump(self, question_id: str, problem: Optional[str] = None,
             phase: Optional[Phase] = None) -> bool:
        """
        Place the cursor directly on a question (scenario launch). When a
        phase is given the question must belong to it.
        """
        if phase is not None and self.phase_of(question_id) != phase:
            logger.warning("Cannot jump to '%s': expected phase %s, question is in %s",
                           question_id, phase.value, self.phase_of(question_id).value)
            return False
        if problem is not None and isinstance(self.policy, BranchingFlowPolicy):
            self.policy.select(problem)
        if not self.contains(question_id):
            logger.warning("Cannot jump to '%s': not in the active flow", question_id)
            return False
        self._move_to(question_id)
        return True

    def reset(self) -> None:
        self.policy.reset()
        self.current_id = None
        self.phase = Phase.SETUP

    def snapshot(self) -> Dict[str, Any]:
        return {
            "phase": self.phase.value,
            "current_question": self.current_id if self.current() else None,
            "progress": round(self.progress(), 4),
        }

    def _move_to(self, question_id: Optional[str]) -> None:
        if question_id is None:
            self.phase = Phase.COMPLETE
            return
        self.current_id = question_id
        self.phase = self.phase_of(question_id)
