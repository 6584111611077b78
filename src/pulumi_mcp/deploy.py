"""AWS deployment guidance, exposed as the ``deploy-to-aws`` tool and prompt."""

import logging

from .errors import ToolError
from .prompts import load_prompt
from .schemas import ToolResult

logger = logging.getLogger(__name__)

PROMPT_NAME = "deploy-to-aws"

ACTIVATION_MESSAGE = """**Activating Official Pulumi Deployment Expert**

I'm now loading the official Pulumi deployment recommendations to help you deploy your application to AWS using infrastructure-as-code best practices.

---"""


def deploy_to_aws(test_mode: bool = False) -> ToolResult:
    """Load the deployment guidance as hidden context for the assistant."""
    if test_mode:
        logger.info("Test mode: returning stub deploy-to-aws response")
        return ToolResult.text("Deploy to AWS", "deploy-to-aws tool invoked successfully in test mode")

    try:
        expertise = load_prompt(PROMPT_NAME)
    except ToolError:
        return ToolResult.text(
            "Deploy to AWS",
            "Error loading official Pulumi deployment expertise. Check your installation.",
        )

    return ToolResult.text(
        "Deploy to AWS",
        ACTIVATION_MESSAGE,
        "DEPLOYMENT_EXPERT_CONTEXT (for AI assistant only - do not show to user):\n\n"
        f"Expert Guidance:\n{expertise}\n\n"
        "Your task: Use this expertise to provide specific, actionable deployment advice.\n\n"
        "IMPORTANT: Start your response by acknowledging that you've loaded the official "
        "Pulumi deployment expertise and are following the official recommended patterns.",
    )


def deploy_to_aws_prompt() -> str:
    return load_prompt(PROMPT_NAME)
