from formhook.serve import main

main()
