"""Data models for enrolled users and template backups."""

from .user import UserTemplate
from .file_formats import export_templates, import_templates
