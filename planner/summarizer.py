"""Result Summarizer — folds a finished task graph into one ordered report."""

from __future__ import annotations

from execution.graph import TaskGraph
from shared.models import Task
from shared.response_formatter import format_result_for_display

REPORT_TRUNCATION = "\n... [report truncated]"


class ResultSummarizer:
    def __init__(self, char_budget: int = 3500):
        self.char_budget = char_budget

    def format_task(self, task: Task) -> str:
        if task.status == "failed" and task.error is not None:
            return task.error.describe()
        body = format_result_for_display(task.result)
        if task.executed_by and task.executed_by != task.name:
            body = f"(via {task.executed_by})\n{body}"
        return body

    def summarize(self, graph: TaskGraph) -> str:
        steps = []
        for index, task in enumerate((t for t in graph if t.is_terminal), start=1):
            steps.append(f"Step {index}: {task.name}\n{self.format_task(task)}")
        report = "\n\n".join(steps) if steps else "No tasks were executed."
        if len(report) > self.char_budget:
            report = report[: max(0, self.char_budget - len(REPORT_TRUNCATION))] + REPORT_TRUNCATION
        return report

    @staticmethod
    def status_of(graph: TaskGraph) -> str:
        """success when every task succeeded, failure when none did, else partial."""
        statuses = [t.status for t in graph]
        if statuses and all(s == "succeeded" for s in statuses):
            return "success"
        if any(s == "succeeded" for s in statuses):
            return "partial"
        return "failure"
