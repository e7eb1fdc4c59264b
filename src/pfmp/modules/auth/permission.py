from pfmp.modules.auth.models.user import UserRole

ROLE_PERMISSIONS = {
    UserRole.STUDENT: ["submit", "resubmit", "sign"],
    UserRole.PARENT: ["sign"],
    UserRole.TEACHER: ["sign", "reject", "remind", "correct_email", "assign_tracking", "report_absence"],
    UserRole.COMPANY_HEAD: ["sign", "sign_attestation", "report_absence"],
    UserRole.TUTOR: ["sign", "sign_attestation", "report_absence"],
    UserRole.SCHOOL_HEAD: ["sign", "remind", "correct_email", "assign_tracking", "sign_mission_order"],
    UserRole.ADMIN: ["remind", "correct_email", "assign_tracking"],
}

def can_perform_action(user_role: UserRole, action: str) -> bool:
    return action in ROLE_PERMISSIONS.get(user_role, [])
