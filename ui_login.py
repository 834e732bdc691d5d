# ui_login.py
from __future__ import annotations

import streamlit as st

from auth import PASSWORD_RULE_MESSAGE, AuthError


def _render_login(ctx: dict) -> None:
    auth = ctx["auth"]
    with st.form("login_form"):
        username = st.text_input("Username", key="login_username")
        password = st.text_input("Password", type="password", key="login_password")
        submitted = st.form_submit_button("Sign in", use_container_width=True)
    if submitted:
        try:
            ctx["sign_in"](auth.login(username, password))
        except AuthError as e:
            st.warning(str(e))


def _render_register(ctx: dict) -> None:
    auth = ctx["auth"]
    with st.form("register_form"):
        username = st.text_input("Username", key="reg_username")
        password = st.text_input("Password", type="password", key="reg_password")
        confirm = st.text_input("Confirm password", type="password", key="reg_confirm")
        st.caption(PASSWORD_RULE_MESSAGE + ".")
        question = st.text_input("Security question", placeholder="e.g. Name of your first pet?", key="reg_question")
        answer = st.text_input("Security answer", key="reg_answer")
        submitted = st.form_submit_button("Create account", use_container_width=True)
    if submitted:
        if password != confirm:
            st.warning("Passwords do not match.")
            return
        try:
            ctx["sign_in"](auth.register(username, password, question, answer))
        except AuthError as e:
            st.warning(str(e))


def _render_reset(ctx: dict) -> None:
    """Three steps: fetch question, verify answer, submit new password."""
    auth = ctx["auth"]
    state = st.session_state.setdefault("reset", {"step": 1, "username": "", "question": "", "answer": ""})

    if state["step"] == 1:
        username = st.text_input("Username", key="reset_username")
        if st.button("Continue", key="reset_step1"):
            try:
                state.update(step=2, username=username.strip(), question=auth.security_question(username))
                st.rerun()
            except AuthError as e:
                st.warning(str(e))

    elif state["step"] == 2:
        st.markdown(f"**{state['question']}**")
        answer = st.text_input("Answer", key="reset_answer")
        c1, c2 = st.columns(2)
        if c1.button("Verify", key="reset_step2"):
            try:
                auth.verify_answer(state["username"], answer)
                state.update(step=3, answer=answer)
                st.rerun()
            except AuthError as e:
                st.warning(str(e))
        if c2.button("Back", key="reset_back2"):
            st.session_state.pop("reset", None)
            st.rerun()

    else:
        new_pw = st.text_input("New password", type="password", key="reset_new")
        confirm = st.text_input("Confirm new password", type="password", key="reset_confirm")
        st.caption(PASSWORD_RULE_MESSAGE + ".")
        if st.button("Set password", key="reset_step3"):
            if new_pw != confirm:
                st.warning("Passwords do not match.")
                return
            try:
                auth.reset_password(state["username"], state["answer"], new_pw)
            except AuthError as e:
                st.warning(str(e))
                return
            st.session_state.pop("reset", None)
            st.success("Password updated successfully. You can sign in now.")


def render(ctx: dict) -> None:
    st.title("Project Control")
    st.caption("Production timeline for architectural models.")

    tab_login, tab_register, tab_reset = st.tabs(["Sign in", "Register", "Forgot password"])
    with tab_login:
        _render_login(ctx)
    with tab_register:
        _render_register(ctx)
    with tab_reset:
        _render_reset(ctx)
