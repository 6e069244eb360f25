"""Live preview sessions for ink-style interactive narrative scripts.

Layers, leaves first:
  runtime    compiler / story-runtime protocols, include resolution
  story      built-in ink-subset compiler and runtime
  reducer    apply(state, action, runtime) -> state
  session    SessionController: action log, dispatch, rewind, replay
  bridge     PreviewBridge: display-surface protocol and readiness gate
  recompile  RecompileCoordinator: serialized engine swaps on edits
  manager    PreviewManager: one panel, one document
"""
