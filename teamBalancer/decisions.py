"""Decision log shared by the seeding, optimizing and analysis phases."""

import logging

from teamBalancer.models import DecisionStep


class DecisionLog:
    """
    Ordered record of every placement made during a run.

    Args:
        total_steps: Expected number of steps, handed to the progress callback
        progress: Optional callable(step_index, total_steps, step) fired after each record
    """

    def __init__(self, total_steps=0, progress=None):
        self.total_steps = total_steps
        self.progress = progress
        self.steps = []

    def __len__(self):
        return len(self.steps)

    def __iter__(self):
        return iter(self.steps)

    def record(self, member, team_index, phase, reason, teams, **details):
        step = DecisionStep(
            step=len(self.steps) + 1,
            competitor_id=member.id,
            competitor_name=member.name,
            weight=member.effective_weight,
            is_elite=member.is_elite,
            team_index=team_index,
            phase=phase,
            reason=reason,
            details=details,
            team_totals=tuple(team.total for team in teams),
        )
        self.steps.append(step)
        logging.debug(f"Step {step.step}: {step.describe()}")
        if self.progress is not None:
            self.progress(step.step, max(self.total_steps, step.step), step)
        return step

    def by_phase(self, phase):
        return [s for s in self.steps if s.phase is phase]
