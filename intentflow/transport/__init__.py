# Transport Layer
# HTTP surface over the workflow engine
# Separated from orchestration logic to allow alternative transports in the future

from intentflow.transport.app import app

__all__ = ["app"]
