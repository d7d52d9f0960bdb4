"""
Demo data bootstrap.

Writes through the repository interface so it works on either backend.
Skipped when the store already has users.
"""

import logging

logger = logging.getLogger(__name__)

ADMIN_USER = {
    "username": "admin",
    "email": "admin@example.com",
    "full_name": "System Admin",
    "role": "system_owner",
    "is_active": True,
}

DEMO_FOLDERS = [
    {"name": "Regression Tests", "description": "Tests for regression testing"},
    {"name": "Smoke Tests", "description": "Quick smoke tests"},
    {"name": "Feature Tests", "description": "Feature specific tests"},
]

# (test case, steps, index into DEMO_FOLDERS)
DEMO_TEST_CASES = [
    (
        {
            "title": "User Login Verification",
            "description": "Verify that users can login with valid credentials",
            "status": "passed",
            "priority": "high",
            "type": "functional",
            "expected_result": "User should be logged in successfully",
        },
        [
            {"description": "Navigate to login page", "expected_result": "Login page is displayed"},
            {"description": "Enter valid username and password", "expected_result": "Credentials are accepted"},
            {"description": "Click on Login button", "expected_result": "User is redirected to dashboard"},
        ],
        0,
    ),
    (
        {
            "title": "Password Reset Flow",
            "description": "Test the complete password reset workflow",
            "status": "failed",
            "priority": "critical",
            "type": "functional",
            "expected_result": "Password reset email should be sent and new password should work",
        },
        [
            {"description": "Navigate to login page", "expected_result": "Login page is displayed"},
            {"description": "Click on Forgot Password link", "expected_result": "Reset page is displayed"},
            {"description": "Enter valid email address", "expected_result": "Success message is shown"},
            {"description": "Check email and click reset link", "expected_result": "Reset form is displayed"},
            {"description": "Enter new password and confirm", "expected_result": "Password is updated"},
        ],
        0,
    ),
    (
        {
            "title": "User Registration Form Validation",
            "description": "Validate all form fields during user registration",
            "status": "pending",
            "priority": "medium",
            "type": "functional",
            "expected_result": "Form should validate all fields correctly",
        },
        [
            {"description": "Navigate to registration page", "expected_result": "Registration form is displayed"},
            {"description": "Leave required fields empty and submit", "expected_result": "Validation errors are shown"},
            {"description": "Enter invalid format for email", "expected_result": "Email validation error is shown"},
            {"description": "Enter short password", "expected_result": "Password validation error is shown"},
            {"description": "Enter valid details and submit", "expected_result": "Registration is successful"},
        ],
        1,
    ),
]


async def seed_demo_data(repository) -> dict:
    """Create the admin user, demo folders and demo test cases.

    Returns counts of what was created; all zero when the store was not empty.
    """
    summary = {"users": 0, "folders": 0, "test_cases": 0}
    if await repository.list_users():
        logger.info("Demo data skipped: store already has users")
        return summary

    admin = await repository.create_user(ADMIN_USER)
    summary["users"] = 1

    folders = []
    for data in DEMO_FOLDERS:
        folders.append(await repository.create_folder({**data, "created_by": admin.id}))
    summary["folders"] = len(folders)

    for data, steps, folder_index in DEMO_TEST_CASES:
        created = await repository.create_test_case_with_steps(
            {**data, "assigned_to": admin.id, "created_by": admin.id}, steps,
        )
        await repository.assign_to_folder(created.test_case.id, folders[folder_index].id)
        summary["test_cases"] += 1

    logger.info("Demo data loaded", extra={"backend": repository.backend_name})
    return summary
