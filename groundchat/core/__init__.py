"""groundchat.core — Data model, configuration and error taxonomy."""
