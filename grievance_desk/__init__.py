# Grievance Desk: grievance tracking API, attachments and client helpers

__version__ = "0.3.0"
