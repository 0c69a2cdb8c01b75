from coffee_lsp.server import main

main()
