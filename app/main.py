"""
Streamlit Frontend for Finance Control

DESIGN PRINCIPLES:
1. One screen per control: totals, history, reminders
2. Explicit confirmation before anything is deleted
3. Clear error messages; a failed action leaves the screen as it was
4. The AppState in st.session_state is only ever replaced, never edited

All business rules live in finance_control.orchestrator. This module
only collects input and renders the state it is given.
"""

import asyncio
from datetime import date

import streamlit as st

from finance_control.ledger import (
    ALL_TYPES,
    category_breakdown,
    filter_transactions,
    movement_breakdown,
    summarize,
)
from finance_control.models import (
    AppState,
    Category,
    ControlType,
    Currency,
    Language,
    TransactionType,
)
from finance_control.orchestrator import (
    LedgerFlow,
    ReminderRemovalError,
    ReminderTransactionError,
    SessionFlow,
    create_app_components,
)
from finance_control.services import AuthError, StorageError
from finance_control.validation import LedgerValidationError


st.set_page_config(
    page_title="Finance Control",
    page_icon="💰",
    layout="wide",
    initial_sidebar_state="expanded",
)

MONTHS = {
    Language.PT_BR: [
        "Janeiro", "Fevereiro", "Março", "Abril", "Maio", "Junho",
        "Julho", "Agosto", "Setembro", "Outubro", "Novembro", "Dezembro",
    ],
    Language.EN_US: [
        "January", "February", "March", "April", "May", "June",
        "July", "August", "September", "October", "November", "December",
    ],
}


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_components():
    """Get or create application components (cached)."""
    return create_app_components()


def current_state() -> AppState:
    return st.session_state.app_state


def apply(coro) -> bool:
    """
    Run an operation and adopt the state it returns.

    On failure the previous state stays and the error is shown.
    """
    try:
        st.session_state.app_state = run_async(coro)
        return True
    except LedgerValidationError as e:
        for issue in e.issues:
            st.error(f"⚠️ {issue.message}")
    except ReminderRemovalError as e:
        # The expense exists now; show it
        st.session_state.app_state = e.state
        st.warning(f"⚠️ {e}")
    except ReminderTransactionError as e:
        st.error(f"❌ {e}")
    except (AuthError, StorageError) as e:
        st.error(f"❌ {e}")
    return False


def render_auth_page(session_flow: SessionFlow):
    """Sign in or sign up."""
    st.title("💰 Finance Control")
    sign_in_tab, sign_up_tab = st.tabs(["Sign in", "Sign up"])

    with sign_in_tab:
        with st.form("sign_in"):
            email = st.text_input("E-mail")
            password = st.text_input("Password", type="password")
            if st.form_submit_button("Sign in"):
                if apply(session_flow.sign_in(current_state(), email, password)):
                    st.rerun()

    with sign_up_tab:
        with st.form("sign_up"):
            name = st.text_input("Name")
            nickname = st.text_input("Nickname")
            email = st.text_input("E-mail", key="sign_up_email")
            password = st.text_input("Password", type="password", key="sign_up_password")
            confirm = st.text_input("Confirm password", type="password")
            if st.form_submit_button("Create account"):
                if apply(session_flow.sign_up(
                    current_state(), email, password, confirm, name, nickname or None
                )):
                    st.rerun()


def render_sidebar(ledger_flow: LedgerFlow, session_flow: SessionFlow):
    state = current_state()
    st.sidebar.title("💰 Finance Control")
    st.sidebar.markdown(f"**{state.user.display_name}**")

    language = st.sidebar.selectbox(
        "Language",
        options=list(Language),
        index=list(Language).index(state.language),
        format_func=lambda lang: lang.value,
    )
    if language != state.language:
        apply(session_flow.set_language(state, language))
        st.rerun()

    st.sidebar.markdown("---")
    st.sidebar.markdown("### Controls")
    for control in state.controls:
        label = f"{'▶ ' if control.id == state.selected_control_id else ''}{control.name} ({control.currency.value})"
        if st.sidebar.button(label, key=f"open_{control.id}"):
            apply(session_flow.select_control(state, control.id))
            st.rerun()

    with st.sidebar.expander("➕ New control"):
        with st.form("new_control"):
            name = st.text_input("Name")
            currency = st.selectbox("Currency", list(Currency), format_func=lambda c: c.value)
            control_type = st.selectbox("Type", list(ControlType), format_func=lambda t: t.value.title())
            if st.form_submit_button("Create"):
                if apply(ledger_flow.create_control(state, name, currency, control_type)):
                    st.rerun()

    with st.sidebar.expander("👤 Profile"):
        with st.form("profile"):
            name = st.text_input("Name", value=state.user.name)
            nickname = st.text_input("Nickname", value=state.user.nickname or "")
            avatar = st.text_input("Avatar URL", value=state.user.avatar or "")
            if st.form_submit_button("Save"):
                if apply(session_flow.update_profile(state, name, nickname, avatar)):
                    st.rerun()

    st.sidebar.markdown("---")
    if st.sidebar.button("Sign out"):
        apply(session_flow.sign_out(state))
        st.rerun()


def render_control_page(ledger_flow: LedgerFlow, advice_agent):
    state = current_state()
    control = state.current_control
    if control is None:
        st.info("Select or create a control in the sidebar.")
        return

    header, delete_col = st.columns([4, 1])
    header.title(control.name)
    with delete_col:
        confirmed = st.checkbox("Confirm delete", key=f"confirm_delete_{control.id}")
        if st.button("🗑️ Delete control"):
            if apply(ledger_flow.delete_control(state, control.id, confirmed)):
                st.rerun()

    today = date.today()
    month_col, year_col, type_col = st.columns(3)
    month = month_col.selectbox(
        "Month",
        options=list(range(1, 13)),
        index=today.month - 1,
        format_func=lambda m: MONTHS[state.language][m - 1],
    )
    year = year_col.number_input("Year", value=today.year, step=1)
    type_filter = type_col.selectbox(
        "Type",
        options=[ALL_TYPES] + [t.value for t in TransactionType],
        format_func=lambda t: t.title(),
    )

    month_transactions = filter_transactions(control, month, int(year))
    summary = summarize(month_transactions)
    currency = control.currency.value

    income_col, expense_col, investment_col, balance_col = st.columns(4)
    income_col.metric("Income", f"{currency} {summary.income:,.2f}")
    expense_col.metric("Expenses", f"{currency} {summary.expense:,.2f}")
    investment_col.metric("Investments", f"{currency} {summary.investment:,.2f}")
    balance_col.metric("Balance", f"{currency} {summary.balance:,.2f}")

    chart_col, movement_col = st.columns(2)
    with chart_col:
        st.markdown("#### Expenses by category")
        categories = category_breakdown(month_transactions)
        if categories:
            st.bar_chart(
                {"category": [c.value for c in categories], "total": [float(v) for v in categories.values()]},
                x="category",
                y="total",
            )
    with movement_col:
        st.markdown("#### Movement")
        movement = movement_breakdown(summary)
        if movement:
            st.bar_chart(
                {"type": [t.value for t, _ in movement], "total": [float(v) for _, v in movement]},
                x="type",
                y="total",
            )

    with st.form("new_transaction", clear_on_submit=True):
        st.markdown("#### New transaction")
        desc_col, amount_col, date_col = st.columns(3)
        description = desc_col.text_input("Description")
        amount = amount_col.text_input("Amount")
        on_date = date_col.date_input("Date", value=today)
        type_col, category_col = st.columns(2)
        transaction_type = type_col.selectbox("Type", list(TransactionType), format_func=lambda t: t.value.title())
        category = category_col.selectbox("Category", list(Category), format_func=lambda c: c.value)
        if st.form_submit_button("Add"):
            if apply(ledger_flow.add_transaction(
                state, control.id, description, amount, transaction_type, category, on_date
            )):
                st.rerun()

    st.markdown("#### History")
    history = filter_transactions(control, month, int(year), type_filter)
    if not history:
        st.caption("No transactions this month.")
    for transaction in history:
        cols = st.columns([3, 2, 2, 2, 1])
        cols[0].write(transaction.description)
        cols[1].write(transaction.category.value)
        cols[2].write(transaction.date.strftime("%d/%m/%Y"))
        sign = "+" if transaction.type == TransactionType.INCOME else "-"
        cols[3].write(f"{sign} {currency} {transaction.amount:,.2f}")
        if cols[4].button("🗑️", key=f"del_tx_{transaction.id}"):
            st.session_state.pending_delete = transaction.id

    pending = st.session_state.get("pending_delete")
    if pending is not None:
        st.warning("Delete this transaction?")
        yes_col, no_col = st.columns(2)
        if yes_col.button("Yes, delete"):
            st.session_state.pending_delete = None
            if apply(ledger_flow.delete_transaction(state, pending, confirmed=True)):
                st.rerun()
        if no_col.button("Cancel"):
            st.session_state.pending_delete = None
            st.rerun()

    render_reminders(ledger_flow, control)

    st.markdown("---")
    if st.button("✨ Get financial advice"):
        with st.spinner("Analyzing..."):
            st.markdown(run_async(advice_agent.get_advice(
                control.transactions, state.language, control_id=control.id
            )))


def render_reminders(ledger_flow: LedgerFlow, control):
    state = current_state()
    st.markdown("#### Reminders")
    with st.form("new_reminder", clear_on_submit=True):
        desc_col, amount_col, date_col = st.columns(3)
        description = desc_col.text_input("Description", key="reminder_description")
        amount = amount_col.text_input("Amount", key="reminder_amount")
        due_date = date_col.date_input("Due date", key="reminder_due")
        if st.form_submit_button("Add reminder"):
            if apply(ledger_flow.add_reminder(state, control.id, description, amount, due_date)):
                st.rerun()

    for reminder in control.reminders:
        cols = st.columns([3, 2, 2, 1, 1])
        cols[0].write(reminder.description)
        cols[1].write(reminder.date.strftime("%d/%m/%Y"))
        cols[2].write(f"{control.currency.value} {reminder.amount:,.2f}")
        if cols[3].button("✅", key=f"pay_{reminder.id}"):
            if apply(ledger_flow.pay_reminder(state, reminder)):
                st.rerun()
        if cols[4].button("🗑️", key=f"del_rem_{reminder.id}"):
            if apply(ledger_flow.delete_reminder(state, reminder.id)):
                st.rerun()


def main():
    """Main application entry point."""
    ledger_flow, session_flow, advice_agent = get_components()

    if "app_state" not in st.session_state:
        st.session_state.app_state = run_async(session_flow.restore())

    if not current_state().is_authenticated:
        render_auth_page(session_flow)
        return

    render_sidebar(ledger_flow, session_flow)
    render_control_page(ledger_flow, advice_agent)


if __name__ == "__main__":
    main()
