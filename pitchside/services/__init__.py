from pitchside.services.core import (
    add_player,
    build_coordinator,
    commit_lineup,
    create_session,
    get_attendance,
    get_match_events,
    get_previous_lineup,
    get_ratings,
    get_session,
    get_session_summaries,
    list_themes,
    match_timer,
    player_development,
    replace_lineup,
    session_attendance_report,
    session_rating_view,
    team_attendance_summary,
    team_raq,
    upsert_attendance,
    upsert_ratings,
)
