class VotingSettings:
    """Voting limits and timings, read once from the Flask config."""

    def __init__(self, session_ttl_sec=7200, max_participants=25,
                 display_name_max_len=20, default_display_name='Anonymous',
                 vote_min=0, vote_max=6, max_round_timer_sec=3600,
                 timer_tick_sec=1.0, timer_heartbeat_sec=0,
                 code_allocation_attempts=200):
        self.session_ttl_sec = session_ttl_sec
        self.max_participants = max_participants
        self.display_name_max_len = display_name_max_len
        self.default_display_name = default_display_name
        self.vote_min = vote_min
        self.vote_max = vote_max
        self.max_round_timer_sec = max_round_timer_sec
        self.timer_tick_sec = timer_tick_sec
        self.timer_heartbeat_sec = timer_heartbeat_sec
        self.code_allocation_attempts = code_allocation_attempts

    @classmethod
    def from_config(cls, config) -> 'VotingSettings':
        return cls(
            session_ttl_sec=int(config.get('SESSION_TTL_SEC', 7200)),
            max_participants=int(config.get('MAX_PARTICIPANTS', 25)),
            display_name_max_len=int(config.get('DISPLAY_NAME_MAX_LEN', 20)),
            default_display_name=config.get('DEFAULT_DISPLAY_NAME', 'Anonymous'),
            vote_min=int(config.get('VOTE_MIN', 0)),
            vote_max=int(config.get('VOTE_MAX', 6)),
            max_round_timer_sec=int(config.get('MAX_ROUND_TIMER_SEC', 3600)),
            timer_tick_sec=float(config.get('TIMER_TICK_SEC', 1.0)),
            timer_heartbeat_sec=int(config.get('TIMER_HEARTBEAT_SEC', 0)),
            code_allocation_attempts=int(config.get('CODE_ALLOCATION_ATTEMPTS', 200)),
        )
