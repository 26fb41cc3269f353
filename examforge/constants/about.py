"""Static metadata describing ExamForge."""

APP_NAME = "ExamForge"
APP_VERSION = "0.1.0"
APP_DESCRIPTION = (
    "ExamForge lets examiners author question pools, assemble test templates and "
    "launch timed test sessions that participants join with single-use access codes."
)
