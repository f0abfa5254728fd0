"""Analysis-service integration: Web API client, scanner runner, output parsing."""

from sonarbridge.sonar.client import SonarClient
from sonarbridge.sonar.runner import ScannerRunner, SubmittedScan
from sonarbridge.sonar.selection import select_scanner

__all__ = ["ScannerRunner", "SonarClient", "SubmittedScan", "select_scanner"]
