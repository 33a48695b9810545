"""formhook: form-submission webhook receiver."""
