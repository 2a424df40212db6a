"""Transition engine: configuration, actions, history and the state machine itself."""
