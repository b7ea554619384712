"""Keyword heuristics that map a prompt to a task identifier.

This is a routing hint, not a semantic classifier. A wrong answer only
changes which policy row applies; validation still follows the caller's
declared schema.
"""

from task_router.models import TaskId

# Checked in order, first match wins.
KEYWORD_GROUPS: tuple[tuple[TaskId, tuple[str, ...]], ...] = (
    (TaskId.TOPIC_MAP, ("mind map", "topics", "syllabus")),
    (TaskId.CHUNK_CLASSIFY, ("assign", "which module", "categorize", "classification")),
    (TaskId.QUIZ_GENERATE, ("quiz", "questions", "mcq", "true/false", "true or false")),
    (TaskId.OVERVIEW_SUMMARIZE, ("summary", "overview", "explain shortly")),
    (TaskId.DIAGRAM_MERMAID, ("mermaid", "diagram")),
)


def classify_task(prompt: str | None) -> TaskId:
    text = (prompt or "").lower()
    for task, phrases in KEYWORD_GROUPS:
        if any(phrase in text for phrase in phrases):
            return task
    return TaskId.OTHER
