"""OTP-gated signup flow."""
