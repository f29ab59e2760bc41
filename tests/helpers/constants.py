"""Identities shared by the tests (STAFF_IDS is set to "900,901" in conftest)."""

STAFF_ID = 900
SUBJECT_ID = 555
OTHER_SUBJECT_ID = 556
