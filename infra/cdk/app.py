#!/usr/bin/env python3
from __future__ import annotations

import aws_cdk as cdk

from innova_bot_stack import InnovaBotStack


app = cdk.App()

InnovaBotStack(
    app,
    "InnovaBotStack",
    env=cdk.Environment(
        account=app.node.try_get_context("account"),
        region=app.node.try_get_context("region"),
    ),
)

app.synth()
