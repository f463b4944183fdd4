"""Text templates shipped with devrig."""

CONFIG_TEMPLATE = """\
# devrig configuration
#
# Every key can also be set through the environment variable shown next to it.
# Environment variables (and a .env file beside this one) take precedence.

# Name tag of the instance (INSTANCE_NAME)
instance_name: dev-rig

# EC2 instance type (INSTANCE_TYPE); t2.micro for free tier
instance_type: t3.medium

# Root volume size in GB (VOLUME_SIZE); Homebrew, bun and the tools need ~8GB
disk_size: 20

# AWS region (AWS_REGION)
region: us-east-1

# Image family: al2023 or ubuntu (OS)
os: al2023

# Key pair name, private key stored in ~/.ssh/<key_name>.pem (KEY_NAME)
key_name: dev-rig-key

# Security group base name (SECURITY_GROUP_NAME)
security_group_name: dev-rig-sg

# Attach an IAM role with Bedrock access (ENABLE_BEDROCK)
enable_bedrock: true
iam_role_name: dev-rig-bedrock-role

# Profile with IAM permissions if the default one lacks them (AWS_ADMIN_PROFILE)
# admin_profile: admin

# auto: private when a Tailscale auth key is set
# true: never open port 22, connect over Tailscale only
# false: always open port 22 (PRIVATE_MODE)
private_mode: auto

# Auth key used to join your tailnet on first boot (TAILSCALE_AUTHKEY).
# Prefer keeping it in .env rather than in this file.
# tailscale_authkey: tskey-auth-...

# Restrict SSH access in public mode
# ssh_allowed_cidr: 203.0.113.0/24

# Use a specific AMI instead of the newest image of the family (DEVRIG_IMAGE_ID)
# image_id: ami-0123456789abcdef0
"""

USER_DATA_TEMPLATE = """\
#!/bin/bash
set -e
exec > /var/log/user-data.log 2>&1

@package_setup

# Install Homebrew
su - @login_user -c 'NONINTERACTIVE=1 /bin/bash -c "$(curl -fsSL https://raw.githubusercontent.com/Homebrew/install/HEAD/install.sh)"'

# Install Node.js via nvm
su - @login_user -c 'curl -fsSL https://raw.githubusercontent.com/nvm-sh/nvm/v0.40.1/install.sh | bash'
su - @login_user -c 'source ~/.nvm/nvm.sh && nvm install --lts'

# Install bun
su - @login_user -c 'eval "$(/home/linuxbrew/.linuxbrew/bin/brew shellenv)" && brew install oven-sh/bun/bun'

# Install AI tools
su - @login_user -c 'eval "$(/home/linuxbrew/.linuxbrew/bin/brew shellenv)" && source ~/.nvm/nvm.sh && npm install -g opencode-ai'
su - @login_user -c 'eval "$(/home/linuxbrew/.linuxbrew/bin/brew shellenv)" && source ~/.nvm/nvm.sh && npm install -g clawdbot'

# Oh My Zsh
su - @login_user -c 'sh -c "$(curl -fsSL https://raw.githubusercontent.com/ohmyzsh/ohmyzsh/master/tools/install.sh)" "" --unattended'
su - @login_user -c 'git clone https://github.com/zsh-users/zsh-autosuggestions ~/.oh-my-zsh/custom/plugins/zsh-autosuggestions'
su - @login_user -c 'git clone https://github.com/zsh-users/zsh-syntax-highlighting ~/.oh-my-zsh/custom/plugins/zsh-syntax-highlighting'

# Configure zshrc
cat > /home/@login_user/.zshrc << 'ZSHRC'
export TERM=xterm-256color

export ZSH="$HOME/.oh-my-zsh"
ZSH_THEME="robbyrussell"
plugins=(git zsh-autosuggestions zsh-syntax-highlighting z)
source $ZSH/oh-my-zsh.sh

# Show hostname in prompt
PROMPT="%m $PROMPT"

export EDITOR="nano"
export PATH="$HOME/.local/bin:$PATH"

eval "$(/home/linuxbrew/.linuxbrew/bin/brew shellenv)"

export NVM_DIR="$HOME/.nvm"
[ -s "$NVM_DIR/nvm.sh" ] && \\. "$NVM_DIR/nvm.sh"
[ -s "$NVM_DIR/bash_completion" ] && \\. "$NVM_DIR/bash_completion"

alias ez='$EDITOR ~/.zshrc'
alias sz='source ~/.zshrc'
alias ll='ls -la'
alias gs='git status'
alias gd='git diff'
alias gl='git log --oneline -10'
alias ta='tmux attach -t'
alias tl='tmux list-sessions'
alias tn='tmux new -s'
alias oc='opencode'
alias cb='clawdbot'

alias update-tools='brew update && brew upgrade && npm update -g opencode-ai clawdbot && echo "Tools updated!"'
alias cleanup='brew cleanup -s && npm cache clean --force && rm -rf ~/.cache/* && echo "Cleaned!" && df -h /'

# Bedrock credentials come from the instance role; clawdbot looks for AWS_PROFILE
export AWS_PROFILE=default
export AWS_REGION=${AWS_REGION:-@aws_region}
ZSHRC
chown @login_user:@login_user /home/@login_user/.zshrc

# Tailscale
curl -fsSL https://tailscale.com/install.sh | sh
@tailscale_setup

chsh -s /bin/zsh @login_user

# Configure clawdbot for Bedrock with the US inference profile
su - @login_user -c 'export AWS_PROFILE=default AWS_REGION=us-east-1 && source ~/.nvm/nvm.sh && clawdbot config set models.bedrockDiscovery.enabled true && clawdbot config set models.bedrockDiscovery.region us-east-1 && clawdbot config set models.providers.amazon-bedrock --json "{\\"baseUrl\\":\\"https://bedrock-runtime.us-east-1.amazonaws.com\\",\\"api\\":\\"bedrock-converse-stream\\",\\"auth\\":\\"aws-sdk\\",\\"models\\":[{\\"id\\":\\"us.anthropic.claude-opus-4-5-20251101-v1:0\\",\\"name\\":\\"Claude Opus 4.5 (US)\\",\\"reasoning\\":true,\\"input\\":[\\"text\\",\\"image\\"],\\"contextWindow\\":200000,\\"maxTokens\\":8192,\\"cost\\":{\\"input\\":0,\\"output\\":0,\\"cacheRead\\":0,\\"cacheWrite\\":0}}]}" && clawdbot models set amazon-bedrock/us.anthropic.claude-opus-4-5-20251101-v1:0' || true

touch /home/@login_user/.bootstrap-complete
"""

PACKAGE_SETUP = {
    "al2023": """\
dnf update -y
# curl-minimal ships with AL2023 and conflicts with curl
dnf install -y git zsh tmux htop jq unzip tar util-linux-user gcc make""",
    "ubuntu": """\
apt-get update && apt-get upgrade -y
apt-get install -y git curl zsh tmux htop jq unzip build-essential""",
}
