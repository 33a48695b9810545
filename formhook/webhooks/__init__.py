"""Form-submission webhook pipeline.

Receives submissions from form builders in whatever body shape the sender is
configured for, normalizes them into one four-field record, and stores each
accepted submission once.
"""
