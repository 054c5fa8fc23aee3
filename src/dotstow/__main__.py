# dotstow - deploy dotfiles packages with GNU Stow
# Copyright (C) 2025 Istvan Sarandi
# SPDX-License-Identifier: GPL-3.0-or-later

from dotstow.cli import main

main()
