from strand.events.bus import EventBus, emit_to

__all__ = ["EventBus", "emit_to"]
