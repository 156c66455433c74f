"""Conditional question hierarchy: visibility, tree building and canonical ordering.

Questions live in a flat list. A sub-question points at its parent through
``parent_id`` and is shown only while ``parent_option_id`` is selected in the
parent's answer. The functions here turn that flat list into:

- the questions visible for a (possibly partial) set of answers,
- an explicit forest of ``QuestionNode`` objects,
- a canonical depth-first ordering with sequential ids (``q001``, ``q002``, ...)
  applied every time a form is saved.
"""

from collections import defaultdict
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from formbuilder.schemas.forms import Question

QUESTION_ID_PREFIX = "q"
QUESTION_ID_MIN_WIDTH = 3


class HierarchyError(ValueError):
    """Raised when a question list does not form a valid forest."""


@dataclass
class QuestionNode:
    question: Question
    # option id -> sub-question nodes, in option order
    children: dict[str, list["QuestionNode"]] = field(default_factory=dict)

    def iter_children(self) -> Iterator["QuestionNode"]:
        for nodes in self.children.values():
            yield from nodes

    def walk(self) -> Iterator["QuestionNode"]:
        """Depth-first, parent before children."""
        yield self
        for child in self.iter_children():
            yield from child.walk()


class QuestionIndex:
    """Validated lookups over a flat question list.

    Construction rejects duplicate ids, sub-questions without an option
    reference, references to options the parent does not own, and cycles.
    A ``parent_id`` pointing at a question absent from the list is tolerated
    here; canonicalization drops such questions.
    """

    def __init__(self, questions: Sequence[Question]) -> None:
        self.questions = list(questions)
        self.by_id: dict[str, Question] = {}
        self._children: dict[tuple[str, str], list[Question]] = defaultdict(list)

        for question in self.questions:
            if question.id in self.by_id:
                raise HierarchyError(f"Duplicate question id '{question.id}'")
            self.by_id[question.id] = question

        for question in self.questions:
            if question.parent_id is None:
                continue
            if question.parent_option_id is None:
                raise HierarchyError(f"Question '{question.id}' has a parent but no parent option")
            parent = self.by_id.get(question.parent_id)
            if parent is None:
                continue
            if question.parent_option_id not in parent.option_ids:
                raise HierarchyError(
                    f"Question '{question.id}' references option '{question.parent_option_id}' "
                    f"which question '{parent.id}' does not have"
                )
            self._children[(parent.id, question.parent_option_id)].append(question)

        self._check_acyclic()

    def _check_acyclic(self) -> None:
        for question in self.questions:
            seen = {question.id}
            current = question
            while current.parent_id is not None:
                parent = self.by_id.get(current.parent_id)
                if parent is None:
                    break
                if parent.id in seen:
                    raise HierarchyError(f"Question '{question.id}' is part of a parent cycle")
                seen.add(parent.id)
                current = parent

    def get(self, question_id: str) -> Question | None:
        return self.by_id.get(question_id)

    def roots(self) -> list[Question]:
        return [q for q in self.questions if q.is_root]

    def children(self, question_id: str, option_id: str) -> list[Question]:
        return list(self._children.get((question_id, option_id), []))


def build_forest(index: QuestionIndex) -> list[QuestionNode]:
    """Build the question tree once; roots in list order, children in option order."""

    def build(question: Question) -> QuestionNode:
        node = QuestionNode(question=question)
        for option_id in question.option_ids:
            sub_questions = index.children(question.id, option_id)
            if sub_questions:
                node.children[option_id] = [build(q) for q in sub_questions]
        return node

    return [build(root) for root in index.roots()]


def option_selected(question: Question, option_id: str | None, answer: Any) -> bool:
    """Whether ``option_id`` is selected in ``answer`` for a select/multiselect question."""
    if option_id is None or answer is None:
        return False
    if question.type == "select":
        return answer == option_id
    if question.type == "multiselect":
        return isinstance(answer, list) and option_id in answer
    return False


def visible_questions(questions: Sequence[Question], answers: Mapping[str, Any]) -> list[Question]:
    """Questions to show for the given answers, each parent followed by its triggered children.

    Roots are always visible. Sub-questions appear, at any depth, once their
    parent is visible and the parent's answer selects their option. Missing
    answers and broken references simply yield nothing.
    """
    children_of: dict[str, list[Question]] = defaultdict(list)
    for question in questions:
        if question.parent_id is not None:
            children_of[question.parent_id].append(question)

    visible: list[Question] = []
    shown: set[str] = set()

    def visit(question: Question) -> None:
        if question.id in shown:
            return
        shown.add(question.id)
        visible.append(question)

        answer = answers.get(question.id)
        if answer is None:
            return
        for child in children_of.get(question.id, []):
            if option_selected(question, child.parent_option_id, answer):
                visit(child)

    for question in questions:
        if question.is_root:
            visit(question)
    return visible


def canonical_id(position: int, total: int) -> str:
    width = max(QUESTION_ID_MIN_WIDTH, len(str(total)))
    return f"{QUESTION_ID_PREFIX}{position:0{width}d}"


def canonicalize(questions: Sequence[Question]) -> list[Question]:
    """Reorder depth-first and renumber questions before a form is persisted.

    Questions with blank text are dropped, and so is every question whose
    parent is missing (which removes the subtrees of dropped questions).
    Each root is followed by its sub-questions grouped per option in option
    order. New ids are assigned in that order and ``parent_id`` values are
    rewritten to match; option ids are left untouched. Applying this to its
    own output returns the same list.
    """
    kept = [q.model_copy(update={"text": q.text.strip()}) for q in questions if q.text.strip()]

    roots = [q for q in kept if q.is_root]
    children_of: dict[str, list[Question]] = defaultdict(list)
    for question in kept:
        if not question.is_root:
            children_of[question.parent_id].append(question)

    ordered: list[Question] = []
    emitted: set[int] = set()

    def expand(question: Question) -> None:
        emitted.add(id(question))
        ordered.append(question)
        for option_id in question.option_ids:
            for child in children_of.get(question.id, []):
                if child.parent_option_id == option_id and id(child) not in emitted:
                    expand(child)

    for root in roots:
        expand(root)

    total = len(ordered)
    id_map: dict[str, str] = {}
    canonical: list[Question] = []
    for position, question in enumerate(ordered, start=1):
        new_id = canonical_id(position, total)
        id_map.setdefault(question.id, new_id)
        canonical.append(
            question.model_copy(
                update={
                    "id": new_id,
                    "parent_id": id_map.get(question.parent_id) if question.parent_id else None,
                }
            )
        )
    return canonical
