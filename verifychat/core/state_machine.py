# Conversation states (derived from the Session, never stored on their own)

# No step rendered yet
INIT = "INIT"

# Sitting on currentStepId, waiting for input or auto-advance
ACTIVE = "ACTIVE"

# Login step, email path: waiting for an email address
AUTH_EMAIL = "AUTH_EMAIL"

# Login step, email path: waiting for the password of pendingAuthEmail
AUTH_PASSWORD = "AUTH_PASSWORD"

# Terminal: end step reached or step list exhausted
COMPLETED = "COMPLETED"

# Terminal: failure policy decided to ban the device
BANNED = "BANNED"


# Login sub-states (Session.authSubState)
AUTH_IDLE = "idle"
AWAITING_EMAIL = "awaiting_email"
AWAITING_PASSWORD = "awaiting_password"

# Terminal markers (Session.terminal)
TERMINAL_NONE = "none"
TERMINAL_COMPLETED = "completed"
TERMINAL_BANNED = "banned"


def state_of(session) -> str:
    if session.terminal == TERMINAL_BANNED:
        return BANNED
    if session.terminal == TERMINAL_COMPLETED:
        return COMPLETED
    if not session.currentStepId:
        return INIT
    if session.authSubState == AWAITING_EMAIL:
        return AUTH_EMAIL
    if session.authSubState == AWAITING_PASSWORD:
        return AUTH_PASSWORD
    return ACTIVE


def is_terminal(session) -> bool:
    return session.terminal != TERMINAL_NONE
