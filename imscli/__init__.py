"""imscli - command line client for the IMS identity service."""

__version__ = "0.1.0"
