"""
Tests for the derived assessment / skill-test lock states.
"""
import pytest

from competency_workflow.models import AssessmentStatus, LearningStatus
from competency_workflow.workflow import LockReason, assessment_lock, skill_test_lock

A = AssessmentStatus
L = LearningStatus


class TestAssessmentLock:
    @pytest.mark.parametrize("assessment,learning,locked,reason", [
        (A.PASSED, L.NONE,      True,  LockReason.PASSED),
        (A.PASSED, L.COMPLETED, True,  LockReason.PASSED),
        (A.FAILED, L.ACTIVE,    True,  LockReason.LEARNING_ACTIVE),
        (A.FAILED, L.COMPLETED, False, LockReason.NONE),
        (A.FAILED, L.NONE,      False, LockReason.NONE),
        (A.NONE,   L.NONE,      False, LockReason.NONE),
    ])
    def test_matrix(self, assessment, learning, locked, reason):
        lock = assessment_lock(assessment, learning)
        assert lock.locked is locked
        assert lock.reason == reason


class TestSkillTestLock:
    @pytest.mark.parametrize("assessment,learning,locked,reason", [
        (A.PASSED, L.NONE,      False, LockReason.NONE),
        (A.PASSED, L.COMPLETED, False, LockReason.NONE),
        (A.PASSED, L.ACTIVE,    True,  LockReason.LEARNING_ACTIVE),
        (A.FAILED, L.ACTIVE,    True,  LockReason.LEARNING_ACTIVE),
        (A.FAILED, L.COMPLETED, True,  LockReason.ASSESSMENT_NEEDED),
        (A.NONE,   L.NONE,      True,  LockReason.ASSESSMENT_NEEDED),
    ])
    def test_matrix(self, assessment, learning, locked, reason):
        lock = skill_test_lock(assessment, learning)
        assert lock.locked is locked
        assert lock.reason == reason
