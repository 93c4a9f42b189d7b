"""Chat room client: connection state machine, transport and view"""
