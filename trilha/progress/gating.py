"""Sequential module gating.

Module *i* is evaluated before the carry is updated with module *i*, so a
module's lock depends only on the modules before it. Modules without lessons
are vacuously complete, so curriculum placeholders never deadlock a course.
"""

from collections.abc import Collection, Sequence
from uuid import UUID

from trilha.curriculum.models import Module

from .models import ModuleState


REASON_FINISH_MODULE = "finish this module to unlock the next"
REASON_AWAITING_VALIDATION = "an instructor must validate this module"
REASON_ADMIN_LOCK = "this module is locked by an administrator"
REASON_DEFAULT = "finish the previous module to continue"


def is_module_completed(module: Module, completed: Collection[UUID]) -> bool:
    """True when every lesson of the module is completed (or it has none)."""
    return all(lesson.id in completed for lesson in module.lessons)


def evaluate_module_states(
    modules: Sequence[Module],
    completed: Collection[UUID],
    sequential: bool,
) -> list[ModuleState]:
    """Compute the lock state of every module, in course order."""
    states = []
    locked_for_next = False
    lock_reason_for_next = ""

    for module in modules:
        module_completed = is_module_completed(module, completed)
        awaiting_validation = module.requires_validation and module_completed

        if not sequential:
            states.append(
                ModuleState(
                    is_locked=False,
                    locked_reason="",
                    awaiting_validation=awaiting_validation,
                    module_completed=module_completed,
                )
            )
            continue

        is_locked = locked_for_next
        states.append(
            ModuleState(
                is_locked=is_locked,
                locked_reason=(lock_reason_for_next or REASON_DEFAULT)
                if is_locked
                else "",
                awaiting_validation=awaiting_validation,
                module_completed=module_completed,
            )
        )

        # Carry for the next module
        if not module_completed:
            locked_for_next, lock_reason_for_next = True, REASON_FINISH_MODULE
        elif module.requires_validation and not module.unlocks_next_module:
            locked_for_next, lock_reason_for_next = True, REASON_AWAITING_VALIDATION
        elif not module.unlocks_next_module:
            locked_for_next, lock_reason_for_next = True, REASON_ADMIN_LOCK
        else:
            locked_for_next, lock_reason_for_next = False, ""

    return states


def is_lesson_locked(
    modules: Sequence[Module],
    completed: Collection[UUID],
    sequential: bool,
    lesson_id: UUID,
) -> bool:
    """A lesson is locked when its module is locked and it is not completed.

    Lessons outside the curriculum are not considered locked.
    """
    if lesson_id in completed:
        return False
    states = evaluate_module_states(modules, completed, sequential)
    for module, state in zip(modules, states, strict=True):
        if any(lesson.id == lesson_id for lesson in module.lessons):
            return state.is_locked
    return False
