import json

import pytest

GOOD_ANALYSIS = json.dumps({
    "programInfo": {"name": "PAYROLL", "type": "program", "language": "COBOL", "lineCount": 420},
    "dependencies": [{"name": "EMPFILE", "type": "file"}],
    "dataStructures": [{"name": "WS-EMPLOYEE", "type": "record"}],
})


class RecordingSleep:
    """Stands in for asyncio.sleep and records the requested delays."""

    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


@pytest.fixture
def good_analysis():
    return GOOD_ANALYSIS


@pytest.fixture
def sleep():
    return RecordingSleep()
