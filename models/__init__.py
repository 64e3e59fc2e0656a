from .db import db
from .login_attempt import LoginAttempt
