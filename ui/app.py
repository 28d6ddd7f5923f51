# ABOUTME: Streamlit UI: Login/signup, then Goals tab (create, log progress), Study session tab and Rewards tab.
# ABOUTME: API URL configurable via API_URL env; JWT stored in session_state, sent as Bearer on requests.

import os
from datetime import datetime

import requests
import streamlit as st
from dotenv import load_dotenv

from core.config import DEFAULT_GOALS_PAGE_SIZE

load_dotenv()

API_URL = os.environ.get("API_URL", "http://localhost:8000")
SESSION_ACCESS_TOKEN = "access_token"
GOAL_TITLE_MAX_CHARS = 60

_TARGET_UNITS = {"hours": "h", "sessions": "sessions", "tasks": "tasks"}


def _format_value(value: float) -> str:
    return f"{value:g}"


def _goal_expander_label(goal: dict, max_chars: int = GOAL_TITLE_MAX_CHARS) -> str:
    """Expander label: truncated title, progress against target, and status when not active."""
    title = (goal.get("title") or "").strip()
    summary = (title[:max_chars] + "…") if len(title) > max_chars else title
    unit = _TARGET_UNITS.get(goal.get("targetType"), "")
    progress = (
        f"{_format_value(goal.get('currentValue', 0))}/{_format_value(goal.get('targetValue', 0))} {unit}"
    ).strip()
    label = f"{summary}  ·  {progress} ({goal.get('progressPercentage', 0):g}%)"
    status = goal.get("status")
    if status and status != "active":
        label += f"  ·  {status.capitalize()}"
    return label


def _parse_milestones_input(text: str) -> list[dict]:
    """Parse one milestone per line as 'title: target'. Raises ValueError naming the bad line."""
    milestones = []
    for lineno, raw in enumerate((text or "").splitlines(), start=1):
        line = raw.strip()
        if not line:
            continue
        title, sep, target = line.rpartition(":")
        if not sep or not title.strip():
            raise ValueError(f"Line {lineno}: use 'title: target'.")
        try:
            value = float(target)
        except ValueError:
            raise ValueError(f"Line {lineno}: '{target.strip()}' is not a number.") from None
        if value <= 0:
            raise ValueError(f"Line {lineno}: target must be positive.")
        milestones.append({"title": title.strip(), "targetProgress": value})
    return milestones


def _progress_messages(result: dict) -> list[str]:
    """Human-readable lines for what a progress or session response unlocked."""
    messages = []
    for m in result.get("newlyCompletedMilestones", []):
        messages.append(f"Milestone reached: {m['title']}")
    if result.get("goalCompleted"):
        messages.append(f"Goal completed: {result['goal']['title']}")
    if result.get("pointsAwarded"):
        messages.append(f"+{result['pointsAwarded']} points")
    if result.get("levelUp"):
        messages.append(f"Level up! You reached level {result['levelUp']['newLevel']}")
    for b in result.get("badgesUnlocked", []):
        messages.append(f"Badge unlocked: {b['name']}")
    return messages


def _safe_json(response: requests.Response):
    """Parse response body as JSON; return dict or empty dict on failure."""
    try:
        return response.json()
    except ValueError:
        return {}


def _auth_headers():
    """Return headers with Bearer token for authenticated API calls, or empty dict if not logged in."""
    token = st.session_state.get(SESSION_ACCESS_TOKEN)
    if not token:
        return {}
    return {"Authorization": f"Bearer {token}"}


def _clear_auth_and_rerun():
    """Remove token from session and rerun to show login screen."""
    if SESSION_ACCESS_TOKEN in st.session_state:
        del st.session_state[SESSION_ACCESS_TOKEN]
    st.rerun()


def _show_error(r: requests.Response, fallback: str) -> None:
    if r.status_code == 401:
        _clear_auth_and_rerun()
        return
    body = _safe_json(r)
    st.error(body.get("message", fallback) if isinstance(body, dict) else fallback)


def _render_login_signup():
    """Show Login and Sign up tabs; on success set access_token and rerun."""
    st.title("Study Goal Tracker")
    st.write("Sign in or create an account to continue.")

    tab_login, tab_signup = st.tabs(["Login", "Sign up"])

    with tab_login:
        with st.form("login_form"):
            username = st.text_input("Username", key="login_username")
            password = st.text_input("Password", type="password", key="login_password")
            if st.form_submit_button("Sign in"):
                if not (username and username.strip() and password):
                    st.error("Enter username and password.")
                else:
                    try:
                        r = requests.post(
                            f"{API_URL}/auth/login",
                            json={"username": username.strip(), "password": password},
                            timeout=10,
                        )
                    except requests.RequestException as e:
                        st.error(f"Could not reach the API: {e}")
                    else:
                        token = _safe_json(r).get("access_token") if r.status_code == 200 else None
                        if token:
                            st.session_state[SESSION_ACCESS_TOKEN] = token
                            st.rerun()
                        else:
                            st.error(_safe_json(r).get("message", "Invalid username or password."))

    with tab_signup:
        with st.form("signup_form"):
            username = st.text_input("Username", key="signup_username")
            password = st.text_input("Password", type="password", key="signup_password")
            if st.form_submit_button("Create account"):
                if not (username and username.strip() and password):
                    st.error("Enter username and password.")
                else:
                    try:
                        r = requests.post(
                            f"{API_URL}/auth/signup",
                            json={"username": username.strip(), "password": password},
                            timeout=10,
                        )
                    except requests.RequestException as e:
                        st.error(f"Could not reach the API: {e}")
                    else:
                        if r.status_code == 201 and _safe_json(r).get("access_token"):
                            st.session_state[SESSION_ACCESS_TOKEN] = _safe_json(r)["access_token"]
                            st.rerun()
                        elif r.status_code == 409:
                            st.error("Username already taken.")
                        else:
                            st.error(_safe_json(r).get("message", "Sign up failed."))


def _render_notifications():
    """Drain pending notifications from the API and show each as a toast."""
    try:
        r = requests.get(f"{API_URL}/notifications", headers=_auth_headers(), timeout=10)
    except requests.RequestException:
        return
    if r.status_code != 200:
        return
    for n in _safe_json(r).get("notifications", []):
        st.toast(n.get("title", "Update"))


def _render_create_goal():
    with st.expander("New goal", expanded=False):
        with st.form("create_goal_form", clear_on_submit=True):
            title = st.text_input("Title", placeholder="e.g. Study 20 hours of calculus")
            description = st.text_area("Description (optional)", height=60)
            target_type = st.selectbox("Measured in", ["hours", "sessions", "tasks"])
            target_value = st.number_input("Target", min_value=0.0, value=10.0, step=1.0)
            milestones_text = st.text_area(
                "Milestones (optional, one per line as 'title: target')",
                placeholder="Quarter way: 5\nHalf way: 10",
                height=80,
            )
            if not st.form_submit_button("Create goal"):
                return
        if not title.strip():
            st.error("Please enter a title.")
            return
        try:
            milestones = _parse_milestones_input(milestones_text)
        except ValueError as e:
            st.error(str(e))
            return
        try:
            r = requests.post(
                f"{API_URL}/goals",
                json={
                    "title": title.strip(),
                    "description": description.strip() or None,
                    "targetType": target_type,
                    "targetValue": target_value,
                    "milestones": milestones,
                },
                headers=_auth_headers(),
                timeout=10,
            )
        except requests.RequestException as e:
            st.error(f"Could not reach the API: {e}")
            return
        if r.status_code == 201:
            st.success("Goal created.")
            st.rerun()
        else:
            _show_error(r, "Could not create goal.")


def _render_goal(goal: dict):
    st.progress(min(1.0, goal.get("progressPercentage", 0) / 100))
    if goal.get("description"):
        st.write(goal["description"])
    for m in goal.get("milestones", []):
        mark = "✅" if m.get("completed") else "⬜"
        st.markdown(f"{mark} {m['title']} ({_format_value(m['targetProgress'])})")
    if goal.get("status") == "archived":
        return
    gid = goal["id"]
    with st.form(f"progress_form_{gid}", clear_on_submit=True):
        delta = st.number_input("Progress to add (negative to correct)", value=1.0, step=0.5, key=f"delta_{gid}")
        note = st.text_input("Note (optional)", key=f"note_{gid}")
        submitted = st.form_submit_button("Log progress")
    if submitted:
        try:
            r = requests.post(
                f"{API_URL}/goals/{gid}/progress",
                json={"delta": delta, "note": note.strip() or None},
                headers=_auth_headers(),
                timeout=15,
            )
        except requests.RequestException as e:
            st.error(f"Could not reach the API: {e}")
            return
        if r.status_code == 200:
            result = _safe_json(r)
            if not result.get("applied"):
                st.info("Nothing changed: the goal is already at its limit.")
            for msg in _progress_messages(result):
                st.success(msg)
        else:
            _show_error(r, "Could not log progress.")
    if st.button("Archive", key=f"archive_{gid}"):
        try:
            r = requests.post(f"{API_URL}/goals/{gid}/archive", headers=_auth_headers(), timeout=10)
        except requests.RequestException as e:
            st.error(f"Could not reach the API: {e}")
            return
        if r.status_code == 200:
            st.rerun()
        else:
            _show_error(r, "Could not archive goal.")


def _render_goals_tab():
    _render_create_goal()
    page_size = DEFAULT_GOALS_PAGE_SIZE
    if "goals_page" not in st.session_state:
        st.session_state["goals_page"] = 1
    page = st.session_state["goals_page"]
    offset = (page - 1) * page_size
    try:
        r = requests.get(
            f"{API_URL}/goals",
            params={"limit": page_size, "offset": offset},
            headers=_auth_headers(),
            timeout=10,
        )
    except requests.RequestException as e:
        st.error(f"Could not load goals. Try again. Error: {e}")
        return
    if r.status_code != 200:
        _show_error(r, "Could not load goals. Try again.")
        return
    data = _safe_json(r)
    goals = data.get("goals", [])
    total = data.get("total", 0)
    if not goals and offset > 0:
        st.session_state["goals_page"] = 1
        st.rerun()
    if not goals:
        st.info("No goals yet. Create one above.")
        return
    st.caption(f"Showing {offset + 1}–{offset + len(goals)} of {total}")
    for g in goals:
        with st.expander(_goal_expander_label(g), expanded=False):
            _render_goal(g)
    col_prev, col_next = st.columns(2)
    with col_prev:
        if st.button("Previous", disabled=(page <= 1), key="prev_goals"):
            st.session_state["goals_page"] = page - 1
            st.rerun()
    with col_next:
        if st.button("Next", disabled=(offset + len(goals) >= total), key="next_goals"):
            st.session_state["goals_page"] = page + 1
            st.rerun()


def _render_session_tab():
    st.write("Finished studying? Record the session to earn points and update your goals.")
    with st.form("session_form", clear_on_submit=True):
        minutes = st.number_input("Minutes studied", min_value=1, value=30, step=5)
        subject = st.text_input("Subject (optional)")
        if not st.form_submit_button("Record session"):
            return
    try:
        r = requests.post(
            f"{API_URL}/sessions",
            json={"durationSeconds": minutes * 60, "subject": subject.strip() or None},
            headers=_auth_headers(),
            timeout=15,
        )
    except requests.RequestException as e:
        st.error(f"Could not reach the API: {e}")
        return
    if r.status_code != 200:
        _show_error(r, "Could not record session.")
        return
    result = _safe_json(r)
    for msg in _progress_messages(result):
        st.success(msg)
    for update in result.get("goalUpdates", []):
        for msg in _progress_messages(update):
            st.success(msg)
    if result.get("goalsNotUpdated"):
        st.warning(
            f"Session saved, but {len(result['goalsNotUpdated'])} goal(s) could not be updated. "
            "Log that progress manually."
        )


def _render_rewards_tab():
    try:
        r = requests.get(f"{API_URL}/rewards", headers=_auth_headers(), timeout=10)
    except requests.RequestException as e:
        st.error(f"Could not load rewards. Error: {e}")
        return
    if r.status_code != 200:
        _show_error(r, "Could not load rewards.")
        return
    p = _safe_json(r)
    col_level, col_points, col_streak = st.columns(3)
    col_level.metric("Level", p.get("level", 1))
    col_points.metric("Points", p.get("totalPoints", 0))
    col_streak.metric("Streak", f"{p.get('currentStreak', 0)} days")
    st.progress(p.get("levelProgress", 0) / 100)
    st.caption(f"{p.get('pointsToNextLevel', 0)} points to the next level")
    st.caption(
        f"{p.get('totalSessions', 0)} sessions · {p.get('totalHours', 0):.1f} hours · "
        f"{p.get('goalsCompleted', 0)} goals completed · longest streak {p.get('longestStreak', 0)} days"
    )
    st.subheader("Badges")
    badges = p.get("badges", [])
    if not badges:
        st.info("No badges yet. Record a study session to earn your first.")
    for b in badges:
        st.markdown(f"**{b['name']}**: {b['description']}")
    if p.get("recentPoints"):
        st.subheader("Recent points")
        for entry in p["recentPoints"]:
            when = datetime.fromisoformat(entry["createdAt"].replace("Z", "+00:00"))
            st.markdown(f"- +{entry['amount']} · {entry['reason']} · {when:%b %d, %Y}")


def main():
    if not st.session_state.get(SESSION_ACCESS_TOKEN):
        _render_login_signup()
        return

    if st.sidebar.button("Logout"):
        _clear_auth_and_rerun()
        return
    _render_notifications()

    st.title("Study Goal Tracker")
    tab_goals, tab_session, tab_rewards = st.tabs(["Goals", "Study session", "Rewards"])
    with tab_goals:
        _render_goals_tab()
    with tab_session:
        _render_session_tab()
    with tab_rewards:
        _render_rewards_tab()


if __name__ == "__main__":
    main()
