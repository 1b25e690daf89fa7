"""
Signup form driven the way a UI adapter drives formstate.

Run with ``python examples/signup_form.py``.
"""
import asyncio
import logging

from formstate import Form, FormConfig

logging.basicConfig(level=logging.DEBUG)

TAKEN_USERNAMES = {'admin', 'root'}


async def username_available(rule, value):
    # Stand-in for a server round trip
    await asyncio.sleep(0.1)
    if value in TAKEN_USERNAMES:
        return f'{value} is taken'
    return None


async def main():
    form = Form(FormConfig(
        on_values_change=lambda changed, all_values: print(f"values: {all_values}"),
    ))

    username = form.get_field_props(
        'account.username',
        rules=[{'required': True}, {'min': 3}, {'validator': username_available}],
        validate_first=True,
    )
    email = form.get_field_props(
        'account.email',
        rules=[{'required': True}, {'type': 'email'}],
        validate_trigger='on_blur',
    )
    newsletter = form.get_field_props('newsletter', initial_value=False, value_prop_name='checked')

    # Adapter mounts the inputs
    for props in (username, email, newsletter):
        props['ref'](object())

    # Two quick keystrokes: the first result comes back stale
    first = username['on_change']('ad')
    second = username['on_change']('admin')
    stale, _ = await asyncio.gather(first, second)
    print(f"stale: {stale.expired_fields()}")
    print(f"fresh: {form.get_field_error('account.username')}")

    email['on_change']('someone@example')
    await email['on_blur']('someone@example')
    print(f"email: {form.get_field_error('account.email')}")

    outcome = await form.validate_fields()
    print(f"errors: {outcome.errors}")
    print(f"values: {form.get_fields_value()}")


if __name__ == '__main__':
    asyncio.run(main())
