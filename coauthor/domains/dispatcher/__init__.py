from coauthor.domains.dispatcher.services import ChatTurnService, DispatcherState, ToolDispatcher, TurnPlan

__all__ = ["ChatTurnService", "DispatcherState", "ToolDispatcher", "TurnPlan"]
