"""Session keys written by the identity provider integration."""

SESSION_USER_ID = "user_id"
