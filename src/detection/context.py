"""Job metadata passed to the LLM together with the form markup."""

from dataclasses import dataclass

from src.models import Job


@dataclass(frozen=True)
class FormContext:
    """Job metadata sent alongside the markup."""
    url: str
    board_name: str
    title: str
    company: str = ""
    location: str = ""
    employment_type: str = ""
    salary: str = ""

    @classmethod
    def from_job(cls, job: Job, url: str, board_name: str) -> "FormContext":
        return cls(
            url=url,
            board_name=board_name,
            title=job.title,
            company=job.company,
            location=job.location,
            employment_type=job.employment_type or "",
            salary=job.salary_display,
        )
