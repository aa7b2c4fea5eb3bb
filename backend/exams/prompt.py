"""The exam prompt: a fixed Markdown template plus per-job parameters."""

from dataclasses import dataclass

SYSTEM_MESSAGE = (
    "You are an experienced university exam designer. You create markdown-formatted "
    "mock exams with clear section headings, numbered questions, and provide answer "
    "keys at the end."
)

EXAM_TEMPLATE = "\n".join([
    "Organise the output strictly according to this Markdown template:",
    "# Exam title (e.g. Linear Algebra Final Mock Exam)",
    "- Duration: XX minutes",
    "- Total score: XX points",
    "",
    "## I. Single-choice questions (X questions, X points each)",
    "1. **Question stem**",
    "   - A. Option A",
    "   - B. Option B",
    "   - C. Option C",
    "   - D. Option D",
    "",
    "## II. Fill-in-the-blank questions (X questions, X points each)",
    "1. Question stem, marking the answer position with underscores",
    "",
    "## III. Computation questions (if applicable)",
    "1. Question stem, listing the given conditions and what must be solved",
    "",
    "## IV. Short-answer questions",
    "1. Question stem, listing the points the answer must cover",
    "",
    "## Answer key",
    "### Single-choice questions",
    "1. Correct option + brief explanation",
    "### Fill-in-the-blank questions",
    "1. Expected answer",
    "### Computation questions",
    "1. Solution steps and final result",
    "### Short-answer questions",
    "1. Key points",
])

REQUIREMENTS = "\n".join([
    "Generate a structured Markdown mock exam from the attachments and make sure that:",
    "- the header states the course name, exam duration and total score;",
    "- single-choice, fill-in-the-blank, computation (if applicable) and short-answer "
    "questions are in separate sections, with a line break between stem and options and "
    "options labelled A/B/C/D;",
    "- no question depends on viewing an image; if a source question relies on a figure, "
    "describe it in words instead;",
    "- the answer key uses second-level headings and lists answers by question number;",
    "- the Markdown syntax is valid so it converts cleanly to PDF.",
])


@dataclass
class ExamPrompt:
    system_message: str
    body: str

    def render(self, attachment_lines: list[str]) -> str:
        """User message text: provider-specific attachment lines, then the body."""
        return "\n".join([*attachment_lines, self.body])


def build_exam_prompt(
    course_title: str,
    course_description: str | None,
    question_count: int,
    difficulty: str,
    extra_instructions: str | None,
) -> ExamPrompt:
    lines = [f"Course name: {course_title}"]
    if course_description:
        lines.append(f"Course description: {course_description}")
    lines.extend([
        f"Target number of questions: {question_count}",
        f"Difficulty: {difficulty}",
        f"Extra requirements: {extra_instructions or 'none'}",
        REQUIREMENTS,
        "",
        EXAM_TEMPLATE,
    ])
    return ExamPrompt(system_message=SYSTEM_MESSAGE, body="\n".join(lines))
