"""공용 타입 정의"""

from typing import Literal, get_args

JobType = Literal["convert_to_editable", "images_to_document", "merge_documents"]
JobStatus = Literal["processing", "completed", "failed"]

JOB_TYPES: tuple[str, ...] = get_args(JobType)
TERMINAL_STATUSES: tuple[str, ...] = ("completed", "failed")
